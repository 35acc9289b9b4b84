"""Human-readable formatting helpers for CLI output."""


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: File size in bytes.

    Returns:
        Formatted string (e.g., "4.2 GB", "128.0 MB", "1.5 KB").
    """
    if size_bytes >= 1024**3:
        return f"{size_bytes / (1024**3):.1f} GB"
    elif size_bytes >= 1024**2:
        return f"{size_bytes / (1024**2):.1f} MB"
    elif size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes} B"


def truncate_path(path: str, max_length: int = 60) -> str:
    """Truncate a path from the left, keeping the file name visible.

    Examples:
        >>> truncate_path("/media/tv/show/season-01/episode-01.mkv", 25)
        '…season-01/episode-01.mkv'
        >>> truncate_path("short.mp4")
        'short.mp4'
    """
    if not path or len(path) <= max_length:
        return path
    return "…" + path[-(max_length - 1) :]


def truncate_message(message: str, max_length: int) -> str:
    """Truncate a message to max_length characters, marking the cut."""
    if len(message) <= max_length:
        return message
    return message[: max_length - 1] + "…"
