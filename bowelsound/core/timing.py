"""
UI-facing time state for playback position display.

Positions are rendered as ``SS:CC``: whole seconds followed by two digits
of hundredths, so 83.456 seconds reads ``83:45``.
"""


def format_time(seconds: float) -> str:
    """Format a position in seconds as ``SS:CC``."""
    seconds = max(0.0, seconds)
    whole = int(seconds)
    hundredths = int((seconds - whole) * 100)
    return f"{whole:02d}:{hundredths:02d}"


def time_label(current: float, duration: float) -> str:
    """Render ``current / duration``, e.g. ``01:50 / 03:00``."""
    return f"{format_time(current)} / {format_time(duration)}"


def reset_label(duration: float) -> str:
    """Label shown once position ticks halt."""
    return time_label(0.0, duration)
