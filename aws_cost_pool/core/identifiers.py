"""
Identifier generators for invoices.

Identifiers are never derived from the wall clock: tests inject
``sequential_ids`` for reproducible output, persistent stores use
``uuid_ids`` so ids stay unique across processes.
"""

import itertools
import uuid
from typing import Callable

IdFactory = Callable[[], str]


def sequential_ids(prefix: str = "invoice", start: int = 1) -> IdFactory:
    """Return a generator of ids ``<prefix>-1``, ``<prefix>-2``, ..."""
    counter = itertools.count(start)
    return lambda: f"{prefix}-{next(counter)}"


def uuid_ids(prefix: str = "invoice") -> IdFactory:
    """Return a generator of random UUID-based ids."""
    return lambda: f"{prefix}-{uuid.uuid4().hex}"
