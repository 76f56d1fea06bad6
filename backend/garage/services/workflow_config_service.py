# Overview: Service-layer operations for workflow configuration; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import WorkflowLevel, Role
from .workflow_engine import LevelConfig, WorkflowConfigurationError, levels_by_number


def return_process_name() -> str:
    return current_app.config.get("RETURN_PROCESS_NAME", "Purchase Return Request")


def get_levels(company_id: int, process_name: str) -> list[WorkflowLevel]:
    """Active levels for a process, ordered by (level, id)."""
    return (
        db.session.query(WorkflowLevel)
        .filter_by(company_id=company_id, process_name=process_name, is_active=True)
        .order_by(WorkflowLevel.level.asc(), WorkflowLevel.id.asc())
        .all()
    )


def to_level_configs(levels: list[WorkflowLevel]) -> list[LevelConfig]:
    return [
        LevelConfig(
            id=row.id,
            level=row.level,
            role_id=row.role_id,
            override_enabled=bool(row.override_enabled),
        )
        for row in levels
    ]


def load_level_configs(company_id: int, process_name: str) -> list[LevelConfig]:
    return to_level_configs(get_levels(company_id, process_name))


def validate_contiguous(levels: list[LevelConfig]) -> None:
    """
    Active levels must be 1..N with no gaps and no duplicates.

    Raises:
        WorkflowConfigurationError: on a gap or a duplicated level number
    """
    numbers = [cfg.level for cfg in levels]
    if len(numbers) != len(set(numbers)):
        raise WorkflowConfigurationError("Duplicate workflow level numbers")
    expected = list(range(1, len(numbers) + 1))
    if sorted(numbers) != expected:
        raise WorkflowConfigurationError(
            f"Workflow levels must be contiguous from 1 (found {sorted(numbers)})"
        )


def add_level(
    company_id: int,
    process_name: str,
    role_id: int,
    override_enabled: bool = False,
) -> WorkflowLevel:
    """
    Append the next level on top of the ladder.

    Existing levels are immutable; only appending is supported.
    Caller commits.
    """
    role = db.session.get(Role, role_id)
    if not role or role.company_id != company_id:
        raise WorkflowConfigurationError(f"Role {role_id} not found for company {company_id}")

    existing = get_levels(company_id, process_name)
    by_level = levels_by_number(to_level_configs(existing))
    next_level = (max(by_level) + 1) if by_level else 1

    level = WorkflowLevel(
        company_id=company_id,
        process_name=process_name,
        level=next_level,
        role_id=role_id,
        override_enabled=override_enabled,
        is_active=True,
    )
    db.session.add(level)
    db.session.flush()

    current_app.logger.info(
        "Workflow level added: company=%s process=%r level=%s role=%s",
        company_id, process_name, next_level, role_id,
    )
    return level
