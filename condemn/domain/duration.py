from __future__ import annotations

import re
from datetime import timedelta

NANOS_PER_SECOND = 1_000_000_000
SECONDS_PER_DAY = 86_400

# Months and years are fixed lengths: 30.44 and 365.25 days.
UNIT_NANOS: dict[str, int] = {
    **dict.fromkeys(("ns", "nsec", "nanos"), 1),
    **dict.fromkeys(("us", "usec", "micros"), 1_000),
    **dict.fromkeys(("ms", "msec", "millis"), 1_000_000),
    **dict.fromkeys(("s", "sec", "secs", "second", "seconds"), NANOS_PER_SECOND),
    **dict.fromkeys(("m", "min", "mins", "minute", "minutes"), 60 * NANOS_PER_SECOND),
    **dict.fromkeys(("h", "hr", "hrs", "hour", "hours"), 3_600 * NANOS_PER_SECOND),
    **dict.fromkeys(("d", "day", "days"), SECONDS_PER_DAY * NANOS_PER_SECOND),
    **dict.fromkeys(("w", "week", "weeks"), 7 * SECONDS_PER_DAY * NANOS_PER_SECOND),
    **dict.fromkeys(("M", "month", "months"), 2_630_016 * NANOS_PER_SECOND),
    **dict.fromkeys(("y", "year", "years"), 31_557_600 * NANOS_PER_SECOND),
}

RE_DURATION_TOKEN = re.compile(r"\s*(\d+)\s*([A-Za-z]+)\s*")


class InvalidDuration(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(text: str) -> timedelta:
    """Parse a human readable duration such as ``"1h"`` or ``"15days 2min 2s"``.

    Tokens are ``<digits><unit>`` and add up. Unit names are case-sensitive so
    ``m`` (minutes) and ``M`` (months) stay distinct.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidDuration("duration is empty")

    total_nanos = 0
    position = 0
    while position < len(text):
        match = RE_DURATION_TOKEN.match(text, position)
        if match is None:
            raise InvalidDuration(f"malformed duration: {text!r}")
        number, unit = match.groups()
        unit_nanos = UNIT_NANOS.get(unit)
        if unit_nanos is None:
            raise InvalidDuration(f"unknown duration unit {unit!r} in {text!r}")
        total_nanos += int(number) * unit_nanos
        position = match.end()

    micros, rest_nanos = divmod(total_nanos, 1_000)
    if rest_nanos >= 500:
        micros += 1
    try:
        return timedelta(microseconds=micros)
    except OverflowError as exc:
        raise InvalidDuration(f"duration out of range: {text!r}") from exc


def format_duration(value: timedelta) -> str:
    remaining = int(value.total_seconds())
    if remaining <= 0:
        return "0s"

    parts: list[str] = []
    for suffix, size in (("d", SECONDS_PER_DAY), ("h", 3_600), ("m", 60), ("s", 1)):
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{suffix}")
    return " ".join(parts)
