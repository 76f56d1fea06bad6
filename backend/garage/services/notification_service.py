# Overview: Service-layer operations for notifications; recipient fan-out for approval transitions.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Notification, User, Role, PurchaseReturn
from .workflow_engine import Transition
from .auth_service import override_role_name
from garage.time_utils import utcnow


STATUS_NEW = "New"
STATUS_READ = "Read"

PRIORITY_MEDIUM = "Medium"
PRIORITY_HIGH = "High"

ALERT_RETURN_CREATED = "Purchase Return Created"
ALERT_RETURN_APPROVAL = "Purchase Return Approval"
ALERT_RETURN_APPROVED = "Purchase Return Approved"
ALERT_RETURN_REJECTED = "Purchase Return Rejected"


class NotificationError(Exception):
    """Raised for notification operation errors."""
    pass


# =============================================================================
# RECIPIENTS
# =============================================================================

def users_with_role(company_id: int, role_id: int | None) -> list[int]:
    if role_id is None:
        return []
    rows = (
        db.session.query(User.id)
        .filter(User.company_id == company_id, User.role_id == role_id, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return [r[0] for r in rows]


def override_observers(company_id: int) -> list[int]:
    rows = (
        db.session.query(User.id)
        .join(Role, Role.id == User.role_id)
        .filter(
            User.company_id == company_id,
            User.is_active.is_(True),
            Role.name == override_role_name(),
        )
        .order_by(User.id.asc())
        .all()
    )
    return [r[0] for r in rows]


class _Recipients:
    """
    Ordered, de-duplicated recipient set.

    The acting user is never a recipient, and each user gets at most one
    notification per transition (the first message queued for them wins).
    """

    def __init__(self, exclude: int | None):
        self.exclude = exclude
        self.messages: dict[int, tuple[str, str]] = {}

    def add(self, user_ids: Iterable[int | None], message: str, priority: str = PRIORITY_MEDIUM) -> None:
        for user_id in user_ids:
            if user_id is None or user_id == self.exclude:
                continue
            self.messages.setdefault(user_id, (message, priority))


def _insert(company_id: int, recipients: _Recipients, alert_type: str, entity_id: str) -> list[Notification]:
    rows = []
    for user_id, (message, priority) in recipients.messages.items():
        row = Notification(
            company_id=company_id,
            assign_to=user_id,
            message=message,
            status=STATUS_NEW,
            priority=priority,
            alert_type=alert_type,
            entity_id=entity_id,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


# =============================================================================
# FAN-OUT
# =============================================================================

def notify_created(ret: PurchaseReturn, transition: Transition, acting_user_id: int) -> list[Notification]:
    """New return: everyone holding the level-1 role."""
    recipients = _Recipients(exclude=acting_user_id)
    if transition.next_level_role_id is not None:
        recipients.add(
            users_with_role(ret.company_id, transition.next_level_role_id),
            f"Purchase return {ret.return_number} is awaiting Level {transition.status_level} approval",
        )
    return _insert(ret.company_id, recipients, ALERT_RETURN_CREATED, ret.return_number)


def notify_approved(ret: PurchaseReturn, transition: Transition, acting_user_id: int) -> list[Notification]:
    """
    Approval fan-out.

    Standard: creator, plus the next-level role while not terminal.
    Override: every user of each collapsed level's role, plus the creator.
    Override-role users are added as observers in both cases.
    """
    recipients = _Recipients(exclude=acting_user_id)
    number = ret.return_number

    if transition.is_override:
        recipients.add(
            [ret.created_by_user_id],
            f"Purchase return {number} was fully approved by override",
        )
        for cfg in transition.collapsed_levels:
            recipients.add(
                users_with_role(ret.company_id, cfg.role_id),
                f"Purchase return {number} Level {cfg.level} was approved by override",
            )
    elif transition.is_terminal:
        recipients.add(
            [ret.created_by_user_id],
            f"Purchase return {number} has been fully approved",
        )
    else:
        recipients.add(
            [ret.created_by_user_id],
            f"Purchase return {number} Level {transition.from_level} approved; "
            f"awaiting Level {transition.status_level} approval",
        )
        recipients.add(
            users_with_role(ret.company_id, transition.next_level_role_id),
            f"Purchase return {number} is awaiting your Level {transition.status_level} approval",
        )

    recipients.add(
        override_observers(ret.company_id),
        f"Purchase return {number} Level {transition.from_level} approved",
    )
    alert = ALERT_RETURN_APPROVED if transition.is_terminal else ALERT_RETURN_APPROVAL
    return _insert(ret.company_id, recipients, alert, number)


def notify_rejected(
    ret: PurchaseReturn,
    transition: Transition,
    acting_user_id: int,
    reason: str,
) -> list[Notification]:
    """
    Rejection fan-out: creator (with the reason) and the previous-level
    approver, plus override-role observers. The next-level role is never told.
    """
    recipients = _Recipients(exclude=acting_user_id)
    number = ret.return_number
    level = transition.from_level

    recipients.add(
        [ret.created_by_user_id],
        f"Purchase return {number} was rejected at Level {level}: {reason}",
        PRIORITY_HIGH,
    )
    if transition.rejected_to is not None:
        recipients.add(
            [transition.rejected_to],
            f"Purchase return {number} was sent back to you from Level {level}: {reason}",
            PRIORITY_HIGH,
        )
    recipients.add(
        override_observers(ret.company_id),
        f"Purchase return {number} was rejected at Level {level}",
    )
    return _insert(ret.company_id, recipients, ALERT_RETURN_REJECTED, number)


def notify_resubmitted(ret: PurchaseReturn, transition: Transition, acting_user_id: int) -> list[Notification]:
    recipients = _Recipients(exclude=acting_user_id)
    recipients.add(
        users_with_role(ret.company_id, transition.next_level_role_id),
        f"Purchase return {ret.return_number} was resubmitted and is awaiting Level 1 approval",
    )
    return _insert(ret.company_id, recipients, ALERT_RETURN_APPROVAL, ret.return_number)


# =============================================================================
# INBOX
# =============================================================================

def list_for_user(user_id: int, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    query = db.session.query(Notification).filter_by(assign_to=user_id)
    if unread_only:
        query = query.filter_by(status=STATUS_NEW)
    return query.order_by(Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: int) -> Notification:
    """Flip a notification to Read. Only its recipient may do so."""
    row = db.session.get(Notification, notification_id)
    if not row or row.assign_to != user_id:
        raise NotificationError("Notification not found")

    if row.status != STATUS_READ:
        row.status = STATUS_READ
        row.read_at = utcnow()
        db.session.commit()
    return row
