"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for the read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Derived figures (available stock, low-stock flag, lot status) are
      always produced by the domain functions, never recomputed in SQL.
    - Reads take no locks.  A listing may trail the most recent committed
      adjustment; callers re-fetch after every mutation.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import func
from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session


def contains_ci(column, term: str):
    """Case-insensitive substring match; % and _ in the term match literally."""
    return func.lower(column).contains(term.lower(), autoescape=True)
