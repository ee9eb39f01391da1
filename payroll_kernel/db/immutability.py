"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger and the settlement history are the record of what was paid and
what is owed.  They are corrected by writing NEW rows (compensating ledger
entries, a deleted-status snapshot), never by editing old ones.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the rules:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

Bulk `update()` statements are not seen by these listeners.  The only bulk
UPDATE in the code base is the version compare-and-swap on WorkerAccount,
which touches no protected table.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|---------------------------------------------------------
LedgerEntry            | ALWAYS immutable, never deleted
SnapshotLineModel      | ALWAYS immutable, never deleted
HistorySnapshotModel   | Only committed -> deleted (with deletion metadata); never deleted
PeriodLock             | Only released_at may be set, once; never deleted
WorkerAccount          | Never deleted (deactivate instead)

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_SNAPSHOT_DELETION_FIELDS = frozenset({"status", "deleted_at", "deleted_by_id", "delete_reason"})


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target, allowed: frozenset = frozenset()) -> list[str]:
    """Names of column attributes with pending changes, minus allowed ones."""
    insp = inspect(target)
    changed = []
    for column_attr in insp.mapper.column_attrs:
        key = column_attr.key
        if key in _AUDIT_FIELDS or key in allowed:
            continue
        if insp.attrs[key].history.has_changes():
            changed.append(key)
    return changed


def _check_ledger_entry_immutability(mapper, connection, target):
    """LedgerEntry rows are immutable from creation."""
    changed = _changed_fields(target)
    if changed:
        _block(
            "LedgerEntry",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on ledger entry",
            field=changed[0],
        )


def _check_ledger_entry_delete(mapper, connection, target):
    _block("LedgerEntry", target, "DELETE", "Ledger entries cannot be deleted")


def _check_snapshot_line_immutability(mapper, connection, target):
    """Snapshot lines are a frozen copy; nothing on them may change."""
    changed = _changed_fields(target)
    if changed:
        _block(
            "SnapshotLine",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on snapshot line",
            field=changed[0],
        )


def _check_snapshot_line_delete(mapper, connection, target):
    _block("SnapshotLine", target, "DELETE", "Snapshot lines cannot be deleted")


def _check_history_snapshot_immutability(mapper, connection, target):
    """
    Allow exactly one update on a snapshot header: committed -> deleted.

    Logic:
        1. Status changing committed -> deleted: only deletion metadata may
           change alongside it.
        2. Anything else: no non-audit field may change.
    """
    from payroll_kernel.domain.values import SnapshotStatus

    status_history = get_history(target, "status")

    if status_history.deleted and status_history.added:
        old_status = SnapshotStatus(status_history.deleted[0])
        new_status = SnapshotStatus(status_history.added[0])
        if (old_status, new_status) == (SnapshotStatus.COMMITTED, SnapshotStatus.DELETED):
            changed = _changed_fields(target, allowed=_SNAPSHOT_DELETION_FIELDS)
            if changed:
                _block(
                    "HistorySnapshot",
                    target,
                    "UPDATE",
                    f"Cannot modify field '{changed[0]}' while deleting snapshot",
                    field=changed[0],
                )
            return

    changed = _changed_fields(target)
    if changed:
        _block(
            "HistorySnapshot",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on history snapshot",
            field=changed[0],
        )


def _check_history_snapshot_delete(mapper, connection, target):
    _block(
        "HistorySnapshot",
        target,
        "DELETE",
        "History snapshots cannot be deleted; mark them deleted instead",
    )


def _check_period_lock_immutability(mapper, connection, target):
    """Only released_at may change, and only from NULL to a value."""
    released_history = get_history(target, "released_at")
    if released_history.deleted and released_history.deleted[0] is not None:
        _block(
            "PeriodLock",
            target,
            "UPDATE",
            "Period lock was already released",
            field="released_at",
        )

    changed = _changed_fields(target, allowed=frozenset({"released_at"}))
    if changed:
        _block(
            "PeriodLock",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on period lock",
            field=changed[0],
        )


def _check_period_lock_delete(mapper, connection, target):
    _block("PeriodLock", target, "DELETE", "Period locks cannot be deleted; release them instead")


def _check_worker_delete(mapper, connection, target):
    _block("WorkerAccount", target, "DELETE", "Workers cannot be deleted; deactivate instead")


def _listeners():
    from payroll_kernel.models.history import HistorySnapshotModel, PeriodLock, SnapshotLineModel
    from payroll_kernel.models.ledger import LedgerEntry
    from payroll_kernel.models.worker import WorkerAccount

    return [
        (LedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (SnapshotLineModel, "before_update", _check_snapshot_line_immutability),
        (SnapshotLineModel, "before_delete", _check_snapshot_line_delete),
        (HistorySnapshotModel, "before_update", _check_history_snapshot_immutability),
        (HistorySnapshotModel, "before_delete", _check_history_snapshot_delete),
        (PeriodLock, "before_update", _check_period_lock_immutability),
        (PeriodLock, "before_delete", _check_period_lock_delete),
        (WorkerAccount, "before_delete", _check_worker_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after models are importable and before any writes.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
