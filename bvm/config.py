"""bvm configuration."""

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_ROOT_DIR = Path.home() / ".bvm"
CONFIG_FILE_NAME = "config.json"

ENV_ROOT_DIR = "BVM_ROOT_DIR"
ENV_CATALOG_URL = "BVM_CATALOG_URL"
ENV_RELEASE_URL = "BVM_RELEASE_URL"


class BvmConfig(BaseModel):
    root_dir: Path = DEFAULT_ROOT_DIR
    catalog_url: str = "https://bvm.bit.dev/bit/versions.json"
    release_url_template: str = "https://bvm.bit.dev/bit/versions/{version}/bit-{version}.tar.gz"
    default_link_name: str = "bit"
    download_retries: int = Field(default=2, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)

    @property
    def versions_dir(self) -> Path:
        return self.root_dir / "versions"

    @property
    def temp_dir(self) -> Path:
        return self.root_dir / ".tmp"

    @property
    def links_dir(self) -> Path:
        return self.root_dir / "links"

    @property
    def log_dir(self) -> Path:
        return self.root_dir / "logs"

    @classmethod
    def load(cls, root_dir: Optional[Path] = None) -> "BvmConfig":
        """Load config.json from the root dir, then apply environment overrides.

        The root dir is taken from the argument, then ``BVM_ROOT_DIR``, then
        ``~/.bvm``.
        """
        if root_dir is None and os.environ.get(ENV_ROOT_DIR):
            root_dir = Path(os.environ[ENV_ROOT_DIR])
        root_dir = Path(root_dir).expanduser() if root_dir else DEFAULT_ROOT_DIR

        data = {}
        config_path = root_dir / CONFIG_FILE_NAME
        if config_path.exists():
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

        data["root_dir"] = root_dir
        if os.environ.get(ENV_CATALOG_URL):
            data["catalog_url"] = os.environ[ENV_CATALOG_URL]
        if os.environ.get(ENV_RELEASE_URL):
            data["release_url_template"] = os.environ[ENV_RELEASE_URL]

        return cls(**data)
