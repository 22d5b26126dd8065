"""24-character hex identifiers, laid out like MongoDB ObjectIds.

4 bytes of big-endian seconds since the epoch, 5 random bytes fixed per
process, and a 3-byte counter. Ids minted by one process sort by creation.
"""

import itertools
import os
import re
import threading
import time
from typing import Any

from bug_tracker.errors import InvalidIdError

OBJECT_ID_LENGTH = 24

_HEX_RE = re.compile(r"[0-9a-fA-F]{24}")
_PROCESS_UNIQUE = os.urandom(5)
_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))
_counter_lock = threading.Lock()


def new_object_id() -> str:
    with _counter_lock:
        inc = next(_counter) & 0xFFFFFF
    raw = (
        int(time.time()).to_bytes(4, "big")
        + _PROCESS_UNIQUE
        + inc.to_bytes(3, "big")
    )
    return raw.hex()


def is_valid_object_id(value: Any) -> bool:
    return isinstance(value, str) and _HEX_RE.fullmatch(value) is not None


def parse_object_id(value: Any) -> str:
    """Return the canonical (lowercase) form of ``value`` or raise InvalidIdError."""
    if not value or not is_valid_object_id(value):
        raise InvalidIdError(value)
    return value.lower()
