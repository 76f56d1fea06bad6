# Overview: Service-layer operations for concurrency; optimistic conflict detection around ledger writes.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


class LedgerConflictError(ConflictError):
    """Another writer moved the return first; the caller's view is stale."""
    pass


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id check covers it there.
    """
    return query.with_for_update()


def check_expected_sequence(last_sequence_no: int | None, expected_sequence_no: int | None) -> None:
    """
    Compare the client's last-seen sequence number with the ledger head.

    None means the caller did not ask for the check.
    """
    if expected_sequence_no is None:
        return
    if last_sequence_no != expected_sequence_no:
        raise LedgerConflictError(
            f"Return changed since it was loaded (expected sequence {expected_sequence_no}, "
            f"current {last_sequence_no})"
        )


def flush_or_conflict() -> None:
    """
    Flush pending writes, mapping optimistic-lock failures to LedgerConflictError.

    Conflicts are never retried: a retry would re-apply the approval.
    """
    try:
        db.session.flush()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        raise LedgerConflictError("Return was modified concurrently; reload and try again") from exc


def commit_or_conflict() -> None:
    try:
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        raise LedgerConflictError("Return was modified concurrently; reload and try again") from exc
