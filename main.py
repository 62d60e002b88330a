#!/usr/bin/env python3
"""bvm entry point"""

import sys

try:
    import aiohttp  # noqa
    import aiofiles  # noqa
    import typer  # noqa
except ImportError as e:
    print(f"Critical import failed: {e}")
    print("Please run: pip install -e .")
    sys.exit(1)


def main():
    """Run the bvm command line."""
    from bvm.cli import app

    app()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
