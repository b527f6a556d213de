"""Per-order write serialization.

Writers that touch the same order (webhook, retry, manual status update)
take the order's lock around the whole command, including the unit of work
commit, so they run one at a time per order. Different orders never block
each other. The repository's revision check remains the backstop for writers
outside this process.

A lock lives in the registry only while some thread holds or waits for it.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

from protean.utils.globals import current_domain


@dataclass
class _OrderLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


_registry_lock = threading.Lock()
_order_locks: dict[str, _OrderLock] = {}


def _acquire_entry(key: str) -> _OrderLock:
    with _registry_lock:
        entry = _order_locks.get(key)
        if entry is None:
            entry = _order_locks[key] = _OrderLock()
        entry.users += 1
        return entry


def _release_entry(key: str, entry: _OrderLock) -> None:
    with _registry_lock:
        entry.users -= 1
        if entry.users == 0:
            del _order_locks[key]


@contextmanager
def order_lock(order_id):
    key = str(order_id)
    entry = _acquire_entry(key)
    try:
        with entry.lock:
            yield
    finally:
        _release_entry(key, entry)


def process_for_order(order_id, command):
    """Process ``command`` synchronously while holding ``order_id``'s lock."""
    with order_lock(order_id):
        return current_domain.process(command, asynchronous=False)
