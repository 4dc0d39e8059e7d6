"""
Injectable id generators for TOC nodes and audit events.

Production code uses a randomly salted prefix so ids never collide across
generation runs in one process; tests pass a fixed-prefix generator to get
reproducible ids.
"""
import itertools
import threading
import uuid
from typing import Callable, Optional

IdGenerator = Callable[[], str]

class SequentialIdGenerator:
    """Callable returning "<prefix>-<n>" with n = 1, 2, 3, ..."""

    def __init__(self, prefix: str, salt: Optional[str] = None):
        self.prefix = prefix if salt is None else f"{prefix}-{salt}"
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self.prefix}-{n}"

def make_id_generator(prefix: str) -> SequentialIdGenerator:
    """Process-unique generator salted with a random token."""
    return SequentialIdGenerator(prefix, salt=uuid.uuid4().hex[:8])
