"""
Purchase Return Coordinator

WHY: A purchase return gives stock back to a supplier and must climb the
company's approval ladder before it is final. The state machine
(workflow_engine) decides WHAT happens; this module makes it happen against
the database in a safe order.

DESIGN PRINCIPLES:
- One transaction per action. The approval ledger rows and the return's
  workflow pointer are the unit of atomicity: they either all commit or the
  action fails.
- Dependent writes (inventory restore, audit log, notifications) run after
  the ledger write, each inside its own savepoint. A failure rolls back only
  that savepoint, is logged, and is reported as a DependentWriteFailure
  warning. It never reverses the approval or rejection.
- Optimistic concurrency: the return row carries version_id and ledger rows
  are unique per (return, sequence_no). Callers may also pass the last
  sequence number they saw; a mismatch is a LedgerConflictError before any
  write. Conflicts are not retried.
- Status ids are resolved at runtime (status_service), never hard-coded.

LIFECYCLE:
1. create_return: stock decremented, Pending L1 appended (sequence 0)
2. approve_return / reject_return: one ladder step (or an override collapse)
3. Level-1 rejection: stock restored exactly once, return awaits resubmission
4. resubmit_return: stock decremented again, Pending L1 appended
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import wraps

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..validation import ConflictError, ValidationError, coerce_int
from ..models import (
    ApprovalEvent,
    InventoryLine,
    PurchaseReturn,
    PurchaseReturnItem,
    StatusMessage,
    User,
)
from . import audit_service, notification_service, status_service, workflow_engine
from .auth_service import is_override_role
from .concurrency import check_expected_sequence, commit_or_conflict, flush_or_conflict, lock_for_update
from .workflow_config_service import load_level_configs, return_process_name, validate_contiguous
from .workflow_engine import LedgerEntry, RequestState, Transition
from garage.time_utils import utcnow


class ReturnError(Exception):
    """Raised for purchase return operation errors."""
    pass


class ReturnNotFoundError(ReturnError):
    pass


class DependentWriteFailure(Exception):
    """
    A write that followed a committed ledger transition failed.

    Collected on the outcome as a warning; never raised to the caller.
    """

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


KIND_INVENTORY = "inventory"
KIND_AUDIT = "audit_log"
KIND_NOTIFICATION = "notification"


@dataclass
class RestoreResult:
    restored: list[dict] = field(default_factory=list)
    missing: list[dict] = field(default_factory=list)


@dataclass
class TransitionOutcome:
    purchase_return: PurchaseReturn
    transition: Transition
    events: list[ApprovalEvent]
    warnings: list[DependentWriteFailure] = field(default_factory=list)
    restore: RestoreResult | None = None

    def to_dict(self) -> dict:
        return {
            "return": self.purchase_return.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "inventory_restored": self.restore is not None,
            "warnings": [w.to_dict() for w in self.warnings],
        }


# =============================================================================
# LOADING
# =============================================================================

def _get_return(company_id: int, return_id: int, *, lock: bool = False) -> PurchaseReturn:
    query = db.session.query(PurchaseReturn).filter_by(id=return_id, company_id=company_id)
    if lock:
        query = lock_for_update(query)
    ret = query.first()
    if not ret:
        raise ReturnNotFoundError(f"Purchase return {return_id} not found")
    return ret


def _ledger_rows(ret: PurchaseReturn) -> list[ApprovalEvent]:
    return (
        db.session.query(ApprovalEvent)
        .filter_by(purchase_return_id=ret.id)
        .order_by(ApprovalEvent.sequence_no.asc())
        .all()
    )


def _to_entry(row: ApprovalEvent) -> LedgerEntry:
    return LedgerEntry(
        sequence_no=row.sequence_no,
        level=row.level,
        trail=row.trail,
        status=row.status,
        role_id=row.role_id,
        is_finalized=row.is_finalized,
        approved_by=row.approved_by_user_id,
        rejected_by=row.rejected_by_user_id,
        rejected_to=row.rejected_to_user_id,
        comment=row.comment,
        superseded=row.is_superseded,
    )


def _request_state(ret: PurchaseReturn, rows: list[ApprovalEvent]) -> RequestState:
    return RequestState(
        workflow_id=ret.workflow_id,
        next_level_role_id=ret.next_level_role_id,
        created_by=ret.created_by_user_id,
        ledger=tuple(_to_entry(r) for r in rows),
    )


def _head_sequence(rows: list[ApprovalEvent]) -> int | None:
    return rows[-1].sequence_no if rows else None


def _levels(company_id: int):
    levels = load_level_configs(company_id, return_process_name())
    if levels:
        validate_contiguous(levels)
    return levels


# =============================================================================
# WRITING
# =============================================================================

def _apply(
    ret: PurchaseReturn,
    rows: list[ApprovalEvent],
    transition: Transition,
    status: StatusMessage,
    rejected_status: StatusMessage | None = None,
) -> list[ApprovalEvent]:
    """
    Persist a transition: supersede the abandoned path, append the new
    events, move the workflow pointer. Flushes so conflicts surface here,
    before any dependent write.

    Rejected events carry rejected_status when given; every other event
    carries the status the return moves to.
    """
    now = utcnow()
    first_new = transition.new_entries[0].sequence_no if transition.new_entries else None
    stale = set(transition.superseded_sequence_nos)
    for row in rows:
        if row.sequence_no in stale and row.superseded_at is None:
            row.superseded_at = now
            row.superseded_by_sequence_no = first_new

    events = []
    for entry in transition.new_entries:
        event = ApprovalEvent(
            purchase_return_id=ret.id,
            sequence_no=entry.sequence_no,
            level=entry.level,
            trail=entry.trail,
            status=entry.status,
            role_id=entry.role_id,
            is_finalized=entry.is_finalized,
            approved_by_user_id=entry.approved_by,
            rejected_by_user_id=entry.rejected_by,
            rejected_to_user_id=entry.rejected_to,
            comment=entry.comment,
            status_id=(
                rejected_status.id
                if rejected_status is not None and entry.trail == workflow_engine.TRAIL_REJECTED
                else status.id
            ),
            occurred_at=now,
        )
        db.session.add(event)
        events.append(event)

    ret.workflow_id = transition.workflow_id
    ret.next_level_role_id = transition.next_level_role_id
    ret.return_status_id = status.id
    # Always bump version_id, even when only the ledger moved
    ret.updated_at = now

    flush_or_conflict()
    return events


def _run_dependent(kind: str, ret: PurchaseReturn, warnings: list[DependentWriteFailure], fn):
    """
    Run one dependent write inside a savepoint.

    Any failure rolls back just this savepoint and becomes a warning.
    """
    try:
        with db.session.begin_nested():
            return fn()
    except Exception as exc:
        current_app.logger.exception(
            "Failed to write %s for purchase return %s", kind, ret.return_number
        )
        warnings.append(DependentWriteFailure(kind, f"{kind} update failed: {exc}"))
        return None


def _finish(ret: PurchaseReturn, transition: Transition, events, warnings, restore=None) -> TransitionOutcome:
    commit_or_conflict()
    current_app.logger.info(
        "Purchase return %s %s: workflow_id=%s status=%s warnings=%d",
        ret.return_number, transition.action, ret.workflow_id, transition.status_key, len(warnings),
    )
    return TransitionOutcome(
        purchase_return=ret,
        transition=transition,
        events=events,
        warnings=warnings,
        restore=restore,
    )


def _abort_on_error(fn):
    """Roll the session back when a transition fails before commit."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (workflow_engine.WorkflowError, ReturnError, ConflictError):
            db.session.rollback()
            raise
    return wrapper


# =============================================================================
# INVENTORY
# =============================================================================

def _inventory_row(company_id: int, purchase_order_id: int, item_id: int) -> InventoryLine | None:
    return (
        db.session.query(InventoryLine)
        .filter_by(company_id=company_id, purchase_order_id=purchase_order_id, item_id=item_id)
        .order_by(InventoryLine.id.asc())
        .first()
    )


def _decrement_inventory(company_id: int, purchase_order_id: int, items) -> None:
    """
    Take returned quantities out of stock.

    Raises:
        ReturnError: if an item has no inventory row or not enough stock
    """
    for item in items:
        line = _inventory_row(company_id, purchase_order_id, item.item_id)
        if line is None:
            raise ReturnError(
                f"No inventory for item {item.item_id} on purchase order {purchase_order_id}"
            )
        if line.item_qty < item.returned_qty:
            raise ReturnError(
                f"Insufficient stock for item {item.item_id}: "
                f"{line.item_qty} on hand, {item.returned_qty} requested"
            )
        line.item_qty -= item.returned_qty


def restore_inventory(ret: PurchaseReturn) -> RestoreResult:
    """
    Put every returned quantity back into stock.

    Each line resolves its single inventory row by
    (company_id, purchase_order_id, item_id). A missing row is logged and
    reported; it never aborts the rejection. Callers guarantee this runs at
    most once per terminal rejection.
    """
    result = RestoreResult()
    for item in ret.items:
        line = _inventory_row(ret.company_id, ret.purchase_order_id, item.item_id)
        if line is None:
            current_app.logger.warning(
                "No inventory row for item %s on purchase order %s (return %s); quantity %s not restored",
                item.item_id, ret.purchase_order_id, ret.return_number, item.returned_qty,
            )
            result.missing.append({"item_id": item.item_id, "returned_qty": item.returned_qty})
            continue
        line.item_qty += item.returned_qty
        result.restored.append({
            "item_id": item.item_id,
            "returned_qty": item.returned_qty,
            "item_qty": line.item_qty,
        })
    db.session.flush()
    return result


# =============================================================================
# CREATION
# =============================================================================

def _next_return_number(company_id: int) -> str:
    count = (
        db.session.query(func.count(PurchaseReturn.id))
        .filter(PurchaseReturn.company_id == company_id)
        .scalar()
    )
    return f"PR-{str((count or 0) + 1).zfill(6)}"


def _rejection_status(company_id: int, fallback: StatusMessage) -> StatusMessage:
    try:
        return status_service.resolve_status(company_id, workflow_engine.STATUS_ORDER_RETURN_CANCELLED)
    except workflow_engine.WorkflowConfigurationError:
        return fallback


def _parse_items(items) -> list[PurchaseReturnItem]:
    if not items:
        raise ReturnError("At least one item is required")

    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ReturnError("Each item must be an object")
        try:
            item_id = coerce_int(raw.get("item_id"), "item_id", minimum=1)
            qty = coerce_int(raw.get("returned_qty"), "returned_qty", minimum=1)
        except ValidationError as e:
            raise ReturnError(f"Invalid item: {e}") from e
        try:
            unit_price = Decimal(str(raw.get("unit_price", 0) or 0))
        except InvalidOperation:
            raise ReturnError(f"unit_price must be a number for item {item_id}")
        if unit_price < 0:
            raise ReturnError(f"unit_price cannot be negative for item {item_id}")
        parsed.append(PurchaseReturnItem(
            item_id=item_id,
            returned_qty=qty,
            unit_price=unit_price,
            order_price=unit_price * qty,
            return_reason=raw.get("return_reason"),
        ))
    return parsed


@_abort_on_error
def create_return(
    company_id: int,
    user_id: int,
    purchase_order_id: int,
    items: list[dict],
    supplier_name: str | None = None,
    remark: str | None = None,
    return_number: str | None = None,
) -> TransitionOutcome:
    """
    Create a purchase return and open its approval path.

    With a ladder configured the return starts Pending at level 1; with no
    ladder it is created already completed. Stock is decremented up front.

    Raises:
        ReturnError: invalid items or insufficient stock
        WorkflowConfigurationError: broken ladder or missing status row
    """
    lines = _parse_items(items)
    levels = _levels(company_id)
    transition = workflow_engine.start(levels)
    status = status_service.resolve_status(company_id, transition.status_key, transition.status_level)

    ret = PurchaseReturn(
        company_id=company_id,
        return_number=return_number or _next_return_number(company_id),
        purchase_order_id=purchase_order_id,
        supplier_name=supplier_name,
        total_items=sum(line.returned_qty for line in lines),
        total_value=sum((line.order_price for line in lines), Decimal("0")),
        remark=remark,
        created_by_user_id=user_id,
    )
    ret.items = lines
    db.session.add(ret)
    _decrement_inventory(company_id, purchase_order_id, lines)
    flush_or_conflict()

    events = _apply(ret, [], transition, status)

    warnings: list[DependentWriteFailure] = []
    _run_dependent(KIND_AUDIT, ret, warnings, lambda: audit_service.write_log(
        company_id=company_id,
        module=audit_service.MODULE_RETURN_MANAGEMENT,
        scope=audit_service.SCOPE_ADD,
        key=ret.return_number,
        log=f"Purchase return {ret.return_number} created for purchase order {purchase_order_id} "
            f"({ret.total_items} units)",
        action_by=user_id,
    ))
    _run_dependent(KIND_NOTIFICATION, ret, warnings, lambda: notification_service.notify_created(
        ret, transition, user_id,
    ))
    return _finish(ret, transition, events, warnings)


# =============================================================================
# APPROVAL / REJECTION / RESUBMISSION
# =============================================================================

@_abort_on_error
def approve_return(
    return_id: int,
    actor: User,
    comment: str | None = None,
    expected_sequence_no: int | None = None,
) -> TransitionOutcome:
    """
    Approve the current level (or, for the override role where the level
    allows it, every remaining level at once).

    Raises:
        ReturnNotFoundError, LedgerConflictError,
        WorkflowConfigurationError, WorkflowPermissionError, WorkflowStateError
    """
    ret = _get_return(actor.company_id, return_id, lock=True)
    rows = _ledger_rows(ret)
    check_expected_sequence(_head_sequence(rows), expected_sequence_no)

    transition = workflow_engine.approve(
        _request_state(ret, rows),
        acting_role_id=actor.role_id,
        acting_user_id=actor.id,
        comment=comment,
        levels=_levels(actor.company_id),
        is_override_role=is_override_role(actor.role),
    )
    status = status_service.resolve_status(ret.company_id, transition.status_key, transition.status_level)
    events = _apply(ret, rows, transition, status)

    if transition.is_override:
        log = f"Level {transition.from_level} and above approved by override ({actor.display_name})"
    else:
        log = f"Level {transition.from_level} approved by {actor.display_name}"
    if comment:
        log = f"{log}: {comment.strip()}"

    warnings: list[DependentWriteFailure] = []
    _run_dependent(KIND_AUDIT, ret, warnings, lambda: audit_service.write_log(
        company_id=ret.company_id,
        module=audit_service.MODULE_RETURN_APPROVAL,
        scope=audit_service.SCOPE_EDIT,
        key=ret.return_number,
        log=log,
        action_by=actor.id,
    ))
    _run_dependent(KIND_NOTIFICATION, ret, warnings, lambda: notification_service.notify_approved(
        ret, transition, actor.id,
    ))
    return _finish(ret, transition, events, warnings)


@_abort_on_error
def reject_return(
    return_id: int,
    actor: User,
    comment: str | None,
    expected_sequence_no: int | None = None,
) -> TransitionOutcome:
    """
    Reject the current level.

    Above level 1 the return goes back one level. At level 1 it leaves the
    workflow and its stock is restored, exactly once, driven only by the
    transition's inventory_restore_needed flag.

    Raises:
        WorkflowValidationError (blank reason, checked first), ReturnNotFoundError,
        LedgerConflictError, WorkflowConfigurationError, WorkflowPermissionError,
        WorkflowStateError
    """
    if not comment or not comment.strip():
        raise workflow_engine.WorkflowValidationError("Rejection reason is required")

    ret = _get_return(actor.company_id, return_id, lock=True)
    rows = _ledger_rows(ret)
    check_expected_sequence(_head_sequence(rows), expected_sequence_no)

    transition = workflow_engine.reject(
        _request_state(ret, rows),
        acting_role_id=actor.role_id,
        acting_user_id=actor.id,
        comment=comment,
        levels=_levels(actor.company_id),
        is_override_role=is_override_role(actor.role),
    )
    status = status_service.resolve_status(ret.company_id, transition.status_key, transition.status_level)
    events = _apply(ret, rows, transition, status, _rejection_status(ret.company_id, status))

    warnings: list[DependentWriteFailure] = []
    restore = None
    if transition.inventory_restore_needed:
        restore = _run_dependent(KIND_INVENTORY, ret, warnings, lambda: restore_inventory(ret))
        if restore is not None:
            for missing in restore.missing:
                warnings.append(DependentWriteFailure(
                    KIND_INVENTORY,
                    f"No inventory row for item {missing['item_id']}; "
                    f"{missing['returned_qty']} units not restored",
                ))

    _run_dependent(KIND_AUDIT, ret, warnings, lambda: audit_service.write_log(
        company_id=ret.company_id,
        module=audit_service.MODULE_RETURN_APPROVAL,
        scope=audit_service.SCOPE_EDIT,
        key=ret.return_number,
        log=f"Level {transition.from_level} rejected by {actor.display_name}: {comment.strip()}",
        action_by=actor.id,
    ))
    _run_dependent(KIND_NOTIFICATION, ret, warnings, lambda: notification_service.notify_rejected(
        ret, transition, actor.id, comment.strip(),
    ))
    return _finish(ret, transition, events, warnings, restore)


@_abort_on_error
def resubmit_return(
    return_id: int,
    actor: User,
    remark: str | None = None,
    expected_sequence_no: int | None = None,
) -> TransitionOutcome:
    """
    Restart a return that was rejected out of the workflow at level 1.

    Stock is decremented again (it was restored by the rejection).

    Raises:
        ReturnError (insufficient stock), WorkflowStateError, WorkflowPermissionError,
        WorkflowConfigurationError, LedgerConflictError
    """
    ret = _get_return(actor.company_id, return_id, lock=True)
    rows = _ledger_rows(ret)
    check_expected_sequence(_head_sequence(rows), expected_sequence_no)

    transition = workflow_engine.resubmit(
        _request_state(ret, rows),
        acting_user_id=actor.id,
        levels=_levels(actor.company_id),
        is_override_role=is_override_role(actor.role),
    )
    status = status_service.resolve_status(ret.company_id, transition.status_key, transition.status_level)

    _decrement_inventory(ret.company_id, ret.purchase_order_id, ret.items)
    if remark:
        ret.remark = remark
    events = _apply(ret, rows, transition, status)

    warnings: list[DependentWriteFailure] = []
    _run_dependent(KIND_AUDIT, ret, warnings, lambda: audit_service.write_log(
        company_id=ret.company_id,
        module=audit_service.MODULE_RETURN_MANAGEMENT,
        scope=audit_service.SCOPE_EDIT,
        key=ret.return_number,
        log=f"Purchase return {ret.return_number} resubmitted by {actor.display_name}",
        action_by=actor.id,
    ))
    _run_dependent(KIND_NOTIFICATION, ret, warnings, lambda: notification_service.notify_resubmitted(
        ret, transition, actor.id,
    ))
    return _finish(ret, transition, events, warnings)


# =============================================================================
# QUERIES
# =============================================================================

SORT_COLUMNS = {
    "created_at": PurchaseReturn.created_at,
    "return_number": PurchaseReturn.return_number,
    "supplier_name": PurchaseReturn.supplier_name,
    "total_value": PurchaseReturn.total_value,
}


def _status_text(ret: PurchaseReturn) -> str | None:
    if not ret.return_status:
        return None
    level = ret.workflow_level.level if ret.workflow_level else None
    return status_service.render(ret.return_status, level)


def _last_active_event(ret: PurchaseReturn) -> ApprovalEvent | None:
    active = [e for e in ret.approval_events if not e.is_superseded]
    return active[-1] if active else None


def list_returns_by_status(
    company_id: int,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
    sort: str = "created_at",
    direction: str = "desc",
    awaiting_role_id: int | None = None,
) -> dict:
    """
    Paginated, pre-joined listing of purchase returns.

    Each row carries the status sub-category, the rendered status text, the
    last active ledger event and total_count (matching rows before paging).
    """
    query = (
        db.session.query(PurchaseReturn)
        .outerjoin(StatusMessage, StatusMessage.id == PurchaseReturn.return_status_id)
        .filter(PurchaseReturn.company_id == company_id)
    )
    if status:
        query = query.filter(StatusMessage.sub_category_id == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            PurchaseReturn.return_number.ilike(pattern),
            PurchaseReturn.supplier_name.ilike(pattern),
        ))
    if awaiting_role_id is not None:
        query = query.filter(
            PurchaseReturn.next_level_role_id == awaiting_role_id,
            PurchaseReturn.workflow_id.isnot(None),
        )

    total_count = query.count()

    column = SORT_COLUMNS.get(sort)
    if column is None:
        raise ReturnError(f"Cannot sort by {sort!r}")
    if direction not in ("asc", "desc"):
        raise ReturnError(f"Cannot sort in direction {direction!r}")
    ordering = column.asc() if direction == "asc" else column.desc()

    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)
    returns = (
        query.order_by(ordering, PurchaseReturn.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    rows = []
    for ret in returns:
        last = _last_active_event(ret)
        row = ret.to_dict()
        row.update({
            "status_text": _status_text(ret),
            "created_by_name": ret.created_by.display_name if ret.created_by else None,
            "last_event": last.to_dict() if last else None,
            "total_count": total_count,
        })
        rows.append(row)

    return {
        "items": rows,
        "total_count": total_count,
        "page": page,
        "page_size": page_size,
    }


def get_return_summary(company_id: int, return_id: int) -> dict:
    """Return, items, active ledger and full ledger history."""
    ret = _get_return(company_id, return_id)
    rows = _ledger_rows(ret)
    return {
        "return": {**ret.to_dict(), "status_text": _status_text(ret)},
        "items": [item.to_dict() for item in ret.items],
        "ledger": [row.to_dict() for row in rows if not row.is_superseded],
        "history": [row.to_dict() for row in rows],
        "last_sequence_no": _head_sequence(rows),
    }
