"""Human-readable durations."""


def time_format(seconds: float) -> str:
    """Format a duration: ``850ms``, ``4.21s``, ``2m 5s``, ``1h 3m``."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{int(round(seconds * 1000))}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
