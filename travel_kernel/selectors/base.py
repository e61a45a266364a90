"""
Module: travel_kernel.selectors.base
Responsibility: Base class for the read-only query selectors.  Selectors are
    the read side of the engine: approval inboxes, pending counts, bailout
    queues.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ value types.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, flush, delete or commit.
    - Selectors return frozen views, never ORM instances.
    - The caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from travel_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
