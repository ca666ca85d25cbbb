"""Parsing and formatting of duration strings such as "1h2m3.5s"."""

from __future__ import annotations

import re

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_COMPONENT = re.compile(r"(\d*)(?:(\.)(\d*))?([^\d.]*)")
_MAX_NANOS = (1 << 63) - 1


def _invalid(text: str, reason: str = "invalid duration") -> ValueError:
    return ValueError(f'time: {reason} "{text}"')


def parse_duration(text: str) -> float:
    """Parse a duration string into seconds.

    Accepts an optional sign followed by one or more decimal numbers, each
    with a unit: ns, us (or µs), ms, s, m or h. A bare "0" is also accepted.
    Raises ValueError for anything else.
    """
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise _invalid(text)

    total = 0
    while rest:
        match = _COMPONENT.match(rest)
        whole, dot, fraction, unit = match.groups()
        fraction = fraction or ""
        if not whole and not fraction:
            raise _invalid(text)
        if not unit:
            raise _invalid(text, "missing unit in duration")
        if unit not in _NANOS_PER_UNIT:
            raise _invalid(text, f'unknown unit "{unit}" in duration')
        scale = _NANOS_PER_UNIT[unit]
        nanos = int(whole or "0") * scale
        if fraction:
            nanos += int(fraction) * scale // 10 ** len(fraction)
        total += nanos
        if total > _MAX_NANOS + 1:
            raise _invalid(text)
        rest = rest[match.end():]

    if total > _MAX_NANOS and not negative:
        raise _invalid(text)
    seconds = total / 1_000_000_000
    return -seconds if negative else seconds


def _with_fraction(value: int, unit: int) -> str:
    whole, part = divmod(value, unit)
    if not part:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{part:0{digits}d}".rstrip("0")


def format_duration(seconds: float) -> str:
    """Format seconds as a duration string, e.g. "1h2m3.5s" or "250ms"."""
    nanos = round(seconds * 1_000_000_000)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    value = abs(nanos)

    if value < 1_000_000_000:
        if value < 1_000:
            return f"{sign}{value}ns"
        if value < 1_000_000:
            return f"{sign}{_with_fraction(value, 1_000)}\u00b5s"
        return f"{sign}{_with_fraction(value, 1_000_000)}ms"

    hours, remainder = divmod(value, 3600 * 1_000_000_000)
    minutes, remainder = divmod(remainder, 60 * 1_000_000_000)
    secs = _with_fraction(remainder, 1_000_000_000) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return sign + secs