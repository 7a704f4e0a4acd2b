"""Core Data timestamp handling."""

import time

# Seconds between the Unix epoch and 2001-01-01, where Core Data time starts
CORETIME_OFFSET = 978307200


def decode_time(timestamp: float | None) -> int:
    """Convert a Core Data timestamp to Unix milliseconds.

    Missing, zero or negative values mean the store never recorded a time,
    so the current time is used instead.
    """
    if not timestamp or timestamp < 1:
        return int(time.time() * 1000)
    return int((timestamp + CORETIME_OFFSET) * 1000)
