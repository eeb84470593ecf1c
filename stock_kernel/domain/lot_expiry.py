"""
LotExpiryMonitor -- derived lot status.

Responsibility:
    Classifies a lot as depleted, expiring or active from its remaining
    quantity and the days left until its expiry date.  Read-only and
    recomputed on every query; status is never stored.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``now`` is always
    passed in, so one request classifies every lot against the same instant.

Rules (priority order):
    1. current_quantity == 0                  -> DEPLETED
    2. days_until_expiry is not None and
       days_until_expiry < horizon_days       -> EXPIRING
    3. otherwise                              -> ACTIVE

    days_until_expiry = ceil((expiry_date - now) / 1 day).  A lot already
    past its expiry date is EXPIRING (negative days) and is_expired.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from stock_kernel.domain.clock import as_utc

DEFAULT_HORIZON_DAYS = 90
DEFAULT_URGENT_DAYS = 30

_ONE_DAY = timedelta(days=1)


class LotQuantities(Protocol):
    current_quantity: int
    expiry_date: datetime | None


class LotStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    DEPLETED = "depleted"


@dataclass(frozen=True)
class LotClassification:
    status: LotStatus
    days_until_expiry: int | None
    is_urgent: bool = False

    @property
    def is_expired(self) -> bool:
        return self.days_until_expiry is not None and self.days_until_expiry <= 0


def days_until_expiry(expiry_date: datetime | None, now: datetime) -> int | None:
    if expiry_date is None:
        return None
    remaining = as_utc(expiry_date) - as_utc(now)
    return math.ceil(remaining / _ONE_DAY)


def classify(
    lot: LotQuantities,
    now: datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    urgent_days: int = DEFAULT_URGENT_DAYS,
) -> LotClassification:
    """
    Classify one lot.

    is_urgent is set only for EXPIRING lots with fewer than ``urgent_days``
    days left.
    """
    days = days_until_expiry(lot.expiry_date, now)

    if lot.current_quantity == 0:
        return LotClassification(status=LotStatus.DEPLETED, days_until_expiry=days)

    if days is not None and days < horizon_days:
        return LotClassification(
            status=LotStatus.EXPIRING,
            days_until_expiry=days,
            is_urgent=days < urgent_days,
        )

    return LotClassification(status=LotStatus.ACTIVE, days_until_expiry=days)
