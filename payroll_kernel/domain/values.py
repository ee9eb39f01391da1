"""
Values -- enumerations shared by the domain core and the ORM models.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  This is the one domain module that
    models/ may import, so that persisted and computed values share a single
    vocabulary.
"""

from enum import Enum


class EntryKind(str, Enum):
    """Kind of ledger entry.

    ADVANCE increases the amount a worker owes; DEPOSIT decreases it.
    """

    ADVANCE = "advance"
    DEPOSIT = "deposit"

    @property
    def sign(self) -> int:
        """+1 for advances, -1 for deposits."""
        return 1 if self is EntryKind.ADVANCE else -1


class AttendanceStatus(str, Enum):
    """Daily attendance status."""

    PRESENT = "present"
    ABSENT = "absent"
    HOLIDAY = "holiday"
    HALF_DAY = "half-day"


class SettlementKind(str, Enum):
    """Kind of period settlement."""

    BONUS = "bonus"
    SALARY = "salary"


class SnapshotStatus(str, Enum):
    """Lifecycle status of a history snapshot.

    Contract: COMMITTED -> DELETED is the only transition, and it is one-way.
    """

    COMMITTED = "committed"
    DELETED = "deleted"


class PeriodState(str, Enum):
    """State of a (period, worker) pair as seen by callers.

    UNCOMPUTED -> DRAFT (repeatable) -> COMMITTED -> DELETED.
    DRAFT is never persisted; it exists only in the caller's hands.
    """

    UNCOMPUTED = "uncomputed"
    DRAFT = "draft"
    COMMITTED = "committed"
    DELETED = "deleted"
