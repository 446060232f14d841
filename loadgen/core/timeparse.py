from __future__ import annotations

import math
import re


_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_PART_RE = re.compile(r"(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m|h)")


def parse_duration_to_seconds(raw: str | int | float) -> float:
    """Parse durations like '500ms', '30s', '5m', '1h' or '1m30s' into seconds.

    Bare numbers (int/float, or a numeric string) are taken as seconds.
    """
    if isinstance(raw, bool):
        raise ValueError("duration must be a number or a duration string")
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            raise ValueError("duration must be finite")
        if raw < 0:
            raise ValueError("duration must be non-negative")
        return float(raw)

    text = raw.strip()
    if not text:
        raise ValueError("duration must not be empty")

    try:
        value = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(value):
            raise ValueError("duration must be finite")
        if value < 0:
            raise ValueError("duration must be non-negative")
        return value

    total = 0.0
    pos = 0
    for match in _PART_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group("value")) * _UNIT_SECONDS[match.group("unit")]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError("duration must match <number><unit>[...] where unit is ms|s|m|h")

    return total


def format_seconds(seconds: float) -> str:
    """Render seconds compactly, e.g. 90.0 -> '1m30s', 0.25 -> '250ms'."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    minutes, secs = divmod(seconds, 60)
    if minutes < 1:
        return f"{secs:g}s"
    if secs == 0:
        return f"{int(minutes)}m"
    return f"{int(minutes)}m{secs:g}s"
