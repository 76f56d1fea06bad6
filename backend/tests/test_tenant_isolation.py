# Overview: Pytest coverage for tenant isolation of purchase returns.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one company cannot see or move another
company's purchase returns.

A second company gets its own Store Manager role and user. That user must:
1. Not find company A's returns (404, not 403, so existence is not revealed)
2. Not see them in listings
3. Not be counted as a recipient of company A's notifications
"""

import pytest

from garage.models import Company, Role, User, Notification
from garage.services import return_service, workflow_config_service
from garage.services.return_service import ReturnNotFoundError
from garage.services.session_service import create_session, validate_session
from garage.services.auth_service import hash_password
from garage.services.workflow_engine import WorkflowConfigurationError


@pytest.fixture
def other_company(db_session):
    company = Company(name="Other Garage", code="OTHER", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def other_manager(db_session, other_company):
    role = Role(company_id=other_company.id, name="Store Manager")
    db_session.add(role)
    db_session.commit()

    user = User(
        company_id=other_company.id,
        role_id=role.id,
        username="otto",
        email="otto@other.local",
        password_hash=hash_password("Password123!"),
    )
    db_session.add(user)
    db_session.commit()
    return user


class TestReturnIsolation:
    """Returns are scoped to the actor's company."""

    def test_foreign_return_is_not_found(self, db_session, make_return, other_manager):
        ret = make_return()

        with pytest.raises(ReturnNotFoundError):
            return_service.approve_return(ret.id, other_manager)
        with pytest.raises(ReturnNotFoundError):
            return_service.get_return_summary(other_manager.company_id, ret.id)

    def test_listing_is_company_scoped(self, db_session, seed, make_return, other_company):
        make_return()

        assert return_service.list_returns_by_status(seed.company.id)["total_count"] == 1
        assert return_service.list_returns_by_status(other_company.id)["total_count"] == 0

    def test_notifications_stay_in_company(self, db_session, seed, make_return, other_manager):
        make_return()

        assert db_session.query(Notification).filter_by(assign_to=other_manager.id).count() == 0

    def test_ladder_rejects_foreign_role(self, db_session, seed, other_manager):
        with pytest.raises(WorkflowConfigurationError):
            workflow_config_service.add_level(
                seed.company.id,
                workflow_config_service.return_process_name(),
                other_manager.role_id,
            )

    def test_api_hides_foreign_return(self, client, headers_for, seed, make_return, other_manager):
        ret = make_return()
        response = client.post("/api/auth/login", json={
            "company_code": "OTHER",
            "username": "otto",
            "password": "Password123!",
        })
        assert response.status_code == 200
        headers = {"Authorization": f"Bearer {response.json['token']}"}

        assert client.get(f"/api/returns/{ret.id}", headers=headers).status_code == 404
        assert client.post(f"/api/returns/{ret.id}/approve", headers=headers).status_code == 404


class TestSessionTenantContext:
    """Sessions carry the company captured at login."""

    def test_session_captures_company_id(self, db_session, seed):
        session, token = create_session(user_id=seed.users.clerk.id)

        assert session.company_id == seed.company.id
        context = validate_session(token)
        assert context is not None
        assert context.company_id == seed.company.id
        assert context.user.id == seed.users.clerk.id

    def test_deactivated_company_invalidates_session(self, db_session, seed):
        session, token = create_session(user_id=seed.users.clerk.id)

        seed.company.is_active = False
        db_session.commit()

        assert validate_session(token) is None
