"""ID helpers."""

from __future__ import annotations

import random

from astrolabe.utils.time import now_ms

ID_SALT_RANGE = 10_000


def new_id() -> int:
    """Creation time in milliseconds plus a random salt.

    Collisions on rapid creation are unlikely but possible; stores check for
    an existing id before inserting.
    """
    return now_ms() + random.randint(0, ID_SALT_RANGE)
