# Overview: Service-layer operations for the status vocabulary; encapsulates business logic and database work.

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import StatusMessage
from .workflow_engine import WorkflowConfigurationError


PLACEHOLDER = "{@}"


def status_category() -> str:
    return current_app.config.get("RETURN_STATUS_CATEGORY", "PURCHASE_ORDER_RETURN")


def list_statuses(company_id: int, category_id: str | None = None) -> list[StatusMessage]:
    return (
        db.session.query(StatusMessage)
        .filter_by(company_id=company_id, category_id=category_id or status_category())
        .order_by(StatusMessage.id.asc())
        .all()
    )


def render(status: StatusMessage, level: int | None = None) -> str:
    """Status text with the {@} placeholder filled in."""
    if level is not None and PLACEHOLDER in status.value:
        return status.value.replace(PLACEHOLDER, str(level))
    return status.value


def resolve_status(company_id: int, sub_category_id: str, level: int | None = None) -> StatusMessage:
    """
    Look up the status row for a semantic state.

    APPROVAL_PENDING has one row per level: the row whose value names
    "Level N" wins; otherwise a row carrying the {@} placeholder; otherwise
    the first row.

    Raises:
        WorkflowConfigurationError: if the tenant has no row for the state
    """
    rows = (
        db.session.query(StatusMessage)
        .filter_by(
            company_id=company_id,
            category_id=status_category(),
            sub_category_id=sub_category_id,
        )
        .order_by(StatusMessage.id.asc())
        .all()
    )
    if not rows:
        raise WorkflowConfigurationError(
            f"Status {status_category()}/{sub_category_id} is not configured for company {company_id}"
        )

    if level is None or len(rows) == 1:
        return rows[0]

    pattern = re.compile(rf"\bLevel\s+{level}\b", re.IGNORECASE)
    for row in rows:
        if pattern.search(row.value):
            return row
    for row in rows:
        if PLACEHOLDER in row.value:
            return row
    return rows[0]
