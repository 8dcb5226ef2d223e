"""Human-readable sizes and durations for log output."""


def format_size(num_bytes: int) -> str:
    """Format bytes like `ls -lh` does: 512, 3.4K, 1.2G."""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    value = float(num_bytes)
    for unit in ("K", "M", "G", "T"):
        value /= 1024
        if value < 1024 or unit == "T":
            break
    if value < 10:
        return f"{value:.1f}{unit}"
    return f"{value:.0f}{unit}"


def format_duration(seconds: int) -> str:
    """Format seconds as human-readable duration."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m"
