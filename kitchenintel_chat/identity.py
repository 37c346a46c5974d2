"""Session and message identifiers."""
import threading
import time
from datetime import datetime
from typing import Optional
from uuid import uuid4


def generate_session_id() -> str:
    """Return a new opaque conversation id.

    The id is used both as the routing key of the chat connection and as the
    namespace of the persisted message log. Persisting it is up to the caller.
    """
    return uuid4().hex


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a moment as a short display time, e.g. ``09:41 AM``."""
    return (moment or datetime.now()).strftime("%I:%M %p")


class MessageIdFactory:
    """Mints message ids from the current time in milliseconds.

    Ids are strictly increasing per factory, so several messages created in the
    same millisecond (e.g. the entries of a history frame) still get distinct ids.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> str:
        now_ms = time.time_ns() // 1_000_000
        with self._lock:
            self._last = max(now_ms, self._last + 1)
            return str(self._last)
