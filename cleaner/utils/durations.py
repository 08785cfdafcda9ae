"""Go-style duration strings.

The ConditionalTTL API carries durations the way the cluster does
(``"1h30m"``, ``"300ms"``, ``"1.5h"``). These helpers convert them to and
from :class:`datetime.timedelta`.
"""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a Go duration string.

    Args:
        value: Duration such as "90s", "1h15m" or "-2.5h"

    Returns:
        Equivalent timedelta (microsecond precision)

    Raises:
        ValueError: If the string is not a valid duration
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"Invalid duration: {value!r}")

    nanos = 0.0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        number, unit = match.groups()
        nanos += float(number) * _UNIT_NANOS[unit]
        pos = match.end()

    return timedelta(microseconds=sign * nanos / 1_000)


def format_duration(delta: timedelta) -> str:
    """Format a timedelta as a Go duration string.

    Args:
        delta: Duration to format

    Returns:
        String such as "1h30m0s", "1.5s" or "0s"
    """
    micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
    if micros == 0:
        return "0s"

    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000_000:
        if micros % 1_000 == 0:
            return f"{sign}{micros // 1_000}ms"
        return f"{sign}{micros}µs"

    hours, rest = divmod(micros, 3_600 * 1_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000)
    seconds, fraction = divmod(rest, 1_000_000)

    seconds_str = str(seconds)
    if fraction:
        seconds_str += ("." + f"{fraction:06d}").rstrip("0")

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds_str}s")
    return sign + "".join(parts)
