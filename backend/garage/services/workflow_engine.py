"""
Approval State Machine

WHY: A purchase return climbs a configured ladder of approval levels, each
gated by one role. Every code path that moves a return (approve, reject,
resubmit, create) must agree on "what level is this return at", so that
answer lives in exactly one place: compute_next_level().

DESIGN PRINCIPLES:
- Pure: no database, no Flask, no clock. Inputs are value objects built by
  the coordinator (return_service); output is a Transition describing the
  ledger events to append and the new request pointer.
- Append-only: a transition never edits an existing event. Events left on an
  abandoned path are listed in superseded_sequence_nos and the coordinator
  stamps them with void-style metadata.
- Structured levels: every event carries an integer level; nothing is parsed
  back out of display text.
- Terminal requests (workflow_id is None) cannot be approved or rejected.
  This is what keeps a level-1 rejection from restoring stock twice.

LADDER (3 levels, roles A/B/C):
    Pending L1 -> A approves -> Approved L1, Pending L2
               -> B rejects  -> Rejected L2 (back to A)
               -> A approves -> Approved L1, Pending L2 (old path superseded)
               -> B approves -> Approved L2, Pending L3
               -> C approves -> Approved L3 (finalized), workflow_id = None
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ..validation import ValidationError


class WorkflowError(Exception):
    """Base class for approval workflow errors."""
    pass


class WorkflowConfigurationError(WorkflowError):
    """No matching workflow level exists for the request."""
    pass


class WorkflowPermissionError(WorkflowError):
    """Actor is not authorized for the current level and override does not apply."""
    pass


class WorkflowValidationError(WorkflowError, ValidationError):
    """Input missing for a transition (e.g., rejection without a reason)."""
    pass


class WorkflowStateError(WorkflowError):
    """Transition not allowed from the request's current state."""
    pass


# =============================================================================
# LEDGER VOCABULARY
# =============================================================================

TRAIL_PENDING = "Pending"
TRAIL_APPROVED = "Approved"
TRAIL_REJECTED = "Rejected"

# Status sub-categories (resolved to tenant text by status_service)
STATUS_ORDER_RETURN_CREATED = "ORDER_RETURN_CREATED"
STATUS_APPROVAL_PENDING = "APPROVAL_PENDING"
STATUS_APPROVER_COMPLETED = "APPROVER_COMPLETED"
STATUS_ORDER_RETURN_CANCELLED = "ORDER_RETURN_CANCELLED"

CREATED_REJECTED = "Created - Rejected"


def pending_text(level: int) -> str:
    return f"Level {level} Approval Pending"


def approved_text(level: int) -> str:
    return f"Level {level} Approved"


def rejected_text(level: int) -> str:
    return CREATED_REJECTED if level == 1 else f"Level {level} Approval Rejected"


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class LevelConfig:
    """One configured rung: workflow_config row reduced to what the engine needs."""
    id: int
    level: int
    role_id: int
    override_enabled: bool = False


@dataclass(frozen=True)
class LedgerEntry:
    sequence_no: int
    level: int
    trail: str
    status: str
    role_id: Optional[int] = None
    is_finalized: bool = False
    approved_by: Optional[int] = None
    rejected_by: Optional[int] = None
    rejected_to: Optional[int] = None
    comment: Optional[str] = None
    superseded: bool = False


@dataclass(frozen=True)
class RequestState:
    """Snapshot of a purchase return as the engine sees it."""
    workflow_id: Optional[int]
    next_level_role_id: Optional[int]
    created_by: Optional[int]
    ledger: tuple[LedgerEntry, ...] = ()


@dataclass(frozen=True)
class NextLevelInfo:
    current_level: int
    current_workflow_id: int
    current_role_id: int
    current_override_enabled: bool
    max_level: int
    is_max_level: bool
    next_level: Optional[int] = None
    next_role_id: Optional[int] = None
    next_workflow_id: Optional[int] = None


@dataclass
class Transition:
    """
    Result of an engine step.

    status_key/status_level name the status row to resolve
    (e.g. APPROVAL_PENDING at level 2); the engine never knows status ids.
    """
    action: str
    new_entries: list[LedgerEntry]
    workflow_id: Optional[int]
    next_level_role_id: Optional[int]
    status_key: str
    status_level: Optional[int] = None
    from_level: Optional[int] = None
    superseded_sequence_nos: list[int] = field(default_factory=list)
    is_override: bool = False
    collapsed_levels: list[LevelConfig] = field(default_factory=list)
    inventory_restore_needed: bool = False
    rejected_to: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.workflow_id is None

    @property
    def is_completed(self) -> bool:
        return self.status_key == STATUS_APPROVER_COMPLETED


# =============================================================================
# LEDGER HELPERS
# =============================================================================

def active_ledger(ledger: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Events on the current approval path, ordered by sequence_no."""
    return sorted((e for e in ledger if not e.superseded), key=lambda e: e.sequence_no)


def next_sequence_no(ledger: Sequence[LedgerEntry]) -> int:
    """
    Next free sequence number.

    Superseded events still hold their numbers, so numbers are never reused.
    """
    if not ledger:
        return 0
    return max(e.sequence_no for e in ledger) + 1


def levels_by_number(levels: Iterable[LevelConfig]) -> dict[int, LevelConfig]:
    """First config per level wins (ordered by level, then id)."""
    by_level: dict[int, LevelConfig] = {}
    for cfg in sorted(levels, key=lambda c: (c.level, c.id)):
        by_level.setdefault(cfg.level, cfg)
    return by_level


def is_awaiting_resubmission(state: RequestState) -> bool:
    """True after a terminal (level-1) rejection: no pointer, last active event Rejected."""
    if state.workflow_id is not None:
        return False
    active = active_ledger(state.ledger)
    return bool(active) and active[-1].trail == TRAIL_REJECTED


def is_terminal(state: RequestState) -> bool:
    return state.workflow_id is None


def latest_approver(ledger: Iterable[LedgerEntry], level: int) -> Optional[int]:
    """User who approved `level` most recently on the active path."""
    for entry in reversed(active_ledger(ledger)):
        if entry.trail == TRAIL_APPROVED and entry.level == level:
            return entry.approved_by
    return None


def _resume_level(active: Sequence[LedgerEntry]) -> int:
    if not active:
        return 1
    last = active[-1]
    if last.trail == TRAIL_REJECTED:
        return last.level or 1
    for entry in reversed(active):
        if entry.trail == TRAIL_APPROVED and entry.role_id is not None:
            return entry.level + 1
    return 1


def _stale_above(ledger: Iterable[LedgerEntry], level: int) -> list[int]:
    return [e.sequence_no for e in active_ledger(ledger) if e.level > level]


# =============================================================================
# NEXT LEVEL
# =============================================================================

def compute_next_level(
    workflow_id: Optional[int],
    ledger: Sequence[LedgerEntry],
    levels: Sequence[LevelConfig],
) -> Optional[NextLevelInfo]:
    """
    Determine the request's current level and what follows it.

    - workflow_id set: the current level is that config's level.
    - workflow_id None: resume from the active ledger. A trailing rejection
      resumes at its level ("Created - Rejected" is level 1); otherwise one
      level above the most recent approval; an empty ledger starts at 1.

    Returns None when no matching configuration exists. Callers must treat
    that as WorkflowConfigurationError, never default it.
    """
    by_level = levels_by_number(levels)
    if not by_level:
        return None
    max_level = max(by_level)

    if workflow_id is not None:
        current = next((c for c in levels if c.id == workflow_id), None)
    else:
        current = by_level.get(_resume_level(active_ledger(ledger)))
    if current is None:
        return None

    if current.level >= max_level:
        return NextLevelInfo(
            current_level=current.level,
            current_workflow_id=current.id,
            current_role_id=current.role_id,
            current_override_enabled=current.override_enabled,
            max_level=max_level,
            is_max_level=True,
        )

    nxt = by_level.get(current.level + 1)
    if nxt is None:
        return None

    return NextLevelInfo(
        current_level=current.level,
        current_workflow_id=current.id,
        current_role_id=current.role_id,
        current_override_enabled=current.override_enabled,
        max_level=max_level,
        is_max_level=False,
        next_level=nxt.level,
        next_role_id=nxt.role_id,
        next_workflow_id=nxt.id,
    )


def can_override(info: NextLevelInfo, is_override_role: bool) -> bool:
    """Override is gated per level: privileged role AND override_enabled on the current rung."""
    return bool(is_override_role and info.current_override_enabled)


def _require_info(state: RequestState, levels: Sequence[LevelConfig]) -> NextLevelInfo:
    info = compute_next_level(state.workflow_id, state.ledger, levels)
    if info is None:
        raise WorkflowConfigurationError(
            f"No workflow level configured for workflow_id={state.workflow_id}"
        )
    return info


# =============================================================================
# TRANSITIONS
# =============================================================================

def start(levels: Sequence[LevelConfig], ledger: Sequence[LedgerEntry] = ()) -> Transition:
    """
    Open the approval path at level 1 (new return or resubmission).

    With no ladder configured at all, the return is born completed.
    """
    by_level = levels_by_number(levels)
    if not by_level:
        return Transition(
            action="create",
            new_entries=[],
            workflow_id=None,
            next_level_role_id=None,
            status_key=STATUS_APPROVER_COMPLETED,
        )

    info = compute_next_level(None, ledger, levels)
    if info is None or info.current_level != 1:
        raise WorkflowConfigurationError("Workflow level 1 is not configured")

    seq = next_sequence_no(ledger)
    entry = LedgerEntry(
        sequence_no=seq,
        level=1,
        trail=TRAIL_PENDING,
        status=pending_text(1),
        role_id=info.current_role_id,
    )
    return Transition(
        action="create",
        new_entries=[entry],
        workflow_id=info.current_workflow_id,
        next_level_role_id=info.current_role_id,
        status_key=STATUS_APPROVAL_PENDING,
        status_level=1,
        superseded_sequence_nos=_stale_above(ledger, 1),
    )


def approve(
    state: RequestState,
    acting_role_id: Optional[int],
    acting_user_id: int,
    comment: Optional[str],
    levels: Sequence[LevelConfig],
    is_override_role: bool = False,
) -> Transition:
    if is_terminal(state):
        raise WorkflowStateError("Return has no pending approval")

    info = _require_info(state, levels)
    comment = (comment or "").strip() or None
    seq = next_sequence_no(state.ledger)
    superseded = _stale_above(state.ledger, info.current_level)

    if can_override(info, is_override_role):
        return _override_approve(info, acting_role_id, acting_user_id, comment, levels, seq, superseded)

    if acting_role_id != info.current_role_id:
        if is_override_role:
            raise WorkflowPermissionError(
                f"Override is not enabled for level {info.current_level}"
            )
        raise WorkflowPermissionError(
            f"Your role cannot approve level {info.current_level}"
        )

    if info.is_max_level:
        entry = LedgerEntry(
            sequence_no=seq,
            level=info.max_level,
            trail=TRAIL_APPROVED,
            status=approved_text(info.max_level),
            role_id=acting_role_id,
            is_finalized=True,
            approved_by=acting_user_id,
            comment=comment,
        )
        return Transition(
            action="approve",
            new_entries=[entry],
            workflow_id=None,
            next_level_role_id=None,
            status_key=STATUS_APPROVER_COMPLETED,
            from_level=info.current_level,
            superseded_sequence_nos=superseded,
        )

    entries = [
        LedgerEntry(
            sequence_no=seq,
            level=info.current_level,
            trail=TRAIL_APPROVED,
            status=approved_text(info.current_level),
            role_id=acting_role_id,
            approved_by=acting_user_id,
            comment=comment,
        ),
        LedgerEntry(
            sequence_no=seq + 1,
            level=info.next_level,
            trail=TRAIL_PENDING,
            status=pending_text(info.next_level),
            role_id=info.next_role_id,
        ),
    ]
    return Transition(
        action="approve",
        new_entries=entries,
        workflow_id=info.next_workflow_id,
        next_level_role_id=info.next_role_id,
        status_key=STATUS_APPROVAL_PENDING,
        status_level=info.next_level,
        from_level=info.current_level,
        superseded_sequence_nos=superseded,
    )


def _override_approve(
    info: NextLevelInfo,
    acting_role_id: Optional[int],
    acting_user_id: int,
    comment: Optional[str],
    levels: Sequence[LevelConfig],
    seq: int,
    superseded: list[int],
) -> Transition:
    """
    Collapse every remaining level into one action.

    Emits Approved(current) then Pending+Approved per remaining level; only
    the last Approved is finalized. Any gap in the ladder aborts before
    anything is produced.
    """
    by_level = levels_by_number(levels)
    remaining = []
    for level in range(info.current_level + 1, info.max_level + 1):
        cfg = by_level.get(level)
        if cfg is None:
            raise WorkflowConfigurationError(f"Workflow level {level} is not configured")
        remaining.append(cfg)

    entries = [
        LedgerEntry(
            sequence_no=seq,
            level=info.current_level,
            trail=TRAIL_APPROVED,
            status=approved_text(info.current_level),
            role_id=acting_role_id,
            is_finalized=not remaining,
            approved_by=acting_user_id,
            comment=comment or f"Override approval - Level {info.current_level}",
        )
    ]
    seq += 1
    for i, cfg in enumerate(remaining):
        entries.append(LedgerEntry(
            sequence_no=seq,
            level=cfg.level,
            trail=TRAIL_PENDING,
            status=pending_text(cfg.level),
            role_id=cfg.role_id,
        ))
        entries.append(LedgerEntry(
            sequence_no=seq + 1,
            level=cfg.level,
            trail=TRAIL_APPROVED,
            status=approved_text(cfg.level),
            role_id=acting_role_id,
            is_finalized=(i == len(remaining) - 1),
            approved_by=acting_user_id,
            comment=f"Override approval - Level {cfg.level}",
        ))
        seq += 2

    current_cfg = LevelConfig(
        id=info.current_workflow_id,
        level=info.current_level,
        role_id=info.current_role_id,
        override_enabled=info.current_override_enabled,
    )
    return Transition(
        action="approve",
        new_entries=entries,
        workflow_id=None,
        next_level_role_id=None,
        status_key=STATUS_APPROVER_COMPLETED,
        from_level=info.current_level,
        superseded_sequence_nos=superseded,
        is_override=True,
        collapsed_levels=[current_cfg] + remaining,
    )


def reject(
    state: RequestState,
    acting_role_id: Optional[int],
    acting_user_id: int,
    comment: Optional[str],
    levels: Sequence[LevelConfig],
    is_override_role: bool = False,
) -> Transition:
    """
    Send the return back one level, or out of the workflow from level 1.

    inventory_restore_needed is derived from the resulting pointer
    (workflow_id is None), never from anything outside the ledger.
    """
    if not comment or not comment.strip():
        raise WorkflowValidationError("Rejection reason is required")
    comment = comment.strip()

    if is_terminal(state):
        raise WorkflowStateError("Return has no pending approval")

    info = _require_info(state, levels)
    if acting_role_id != info.current_role_id and not is_override_role:
        raise WorkflowPermissionError(
            f"Your role cannot reject level {info.current_level}"
        )

    level = info.current_level
    rejected_to = latest_approver(state.ledger, level - 1) if level > 1 else None

    entry = LedgerEntry(
        sequence_no=next_sequence_no(state.ledger),
        level=level,
        trail=TRAIL_REJECTED,
        status=rejected_text(level),
        role_id=acting_role_id,
        rejected_by=acting_user_id,
        rejected_to=rejected_to,
        comment=comment,
    )

    if level > 1:
        prev = levels_by_number(levels).get(level - 1)
        if prev is None:
            raise WorkflowConfigurationError(f"Workflow level {level - 1} is not configured")
        return Transition(
            action="reject",
            new_entries=[entry],
            workflow_id=prev.id,
            next_level_role_id=prev.role_id,
            status_key=STATUS_APPROVAL_PENDING,
            status_level=prev.level,
            from_level=level,
            rejected_to=rejected_to,
            inventory_restore_needed=False,
        )

    return Transition(
        action="reject",
        new_entries=[entry],
        workflow_id=None,
        next_level_role_id=None,
        status_key=STATUS_ORDER_RETURN_CREATED,
        from_level=level,
        rejected_to=None,
        inventory_restore_needed=True,
    )


def resubmit(
    state: RequestState,
    acting_user_id: int,
    levels: Sequence[LevelConfig],
    is_override_role: bool = False,
) -> Transition:
    """Restart a return rejected out of the workflow at level 1."""
    if not is_awaiting_resubmission(state):
        raise WorkflowStateError("Only a return rejected at level 1 can be resubmitted")
    if acting_user_id != state.created_by and not is_override_role:
        raise WorkflowPermissionError("Only the creator can resubmit this return")
    if not levels_by_number(levels):
        raise WorkflowConfigurationError("No workflow levels configured")

    transition = start(levels, state.ledger)
    transition.action = "resubmit"
    return transition
