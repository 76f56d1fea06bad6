"""
Pytest fixtures for the garage returns backend tests.

Provides the test database, a seeded company with a 3-level purchase return
ladder (Store Manager -> Purchase Manager -> Finance), its status
vocabulary, inventory, users for every role and a test client.
"""

from types import SimpleNamespace

import pytest

from garage import create_app
from garage.config import TestingConfig
from garage.extensions import db
from garage.models import Company, Role, User, WorkflowLevel, StatusMessage, InventoryLine
from garage.services.auth_service import hash_password


PASSWORD = "Password123!"
PROCESS = "Purchase Return Request"
CATEGORY = "PURCHASE_ORDER_RETURN"
PURCHASE_ORDER_ID = 1000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company(db_session):
    company = Company(name="Demo Garage", code="GARAGE", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def roles(db_session, company):
    """Clerk, three approver roles and the override role."""
    names = {
        "clerk": "Clerk",
        "a": "Store Manager",
        "b": "Purchase Manager",
        "c": "Finance",
        "super": "Super Admin",
    }
    created = {}
    for key, name in names.items():
        role = Role(company_id=company.id, name=name)
        db_session.add(role)
        created[key] = role
    db_session.commit()
    return SimpleNamespace(**created)


def _make_user(db_session, company, role, username):
    user = User(
        company_id=company.id,
        role_id=role.id,
        username=username,
        email=f"{username}@garage.local",
        first_name=username.title(),
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def users(db_session, company, roles):
    """One user per role, plus a second Store Manager to check fan-out."""
    return SimpleNamespace(
        clerk=_make_user(db_session, company, roles.clerk, "clerk"),
        a=_make_user(db_session, company, roles.a, "anna"),
        a2=_make_user(db_session, company, roles.a, "arthur"),
        b=_make_user(db_session, company, roles.b, "bruno"),
        c=_make_user(db_session, company, roles.c, "carla"),
        super=_make_user(db_session, company, roles.super, "sam"),
    )


@pytest.fixture(scope='function')
def ladder(db_session, company, roles):
    """3-level ladder; override enabled at level 1 only."""
    levels = []
    for number, (role, override) in enumerate([(roles.a, True), (roles.b, False), (roles.c, False)], start=1):
        level = WorkflowLevel(
            company_id=company.id,
            process_name=PROCESS,
            level=number,
            role_id=role.id,
            override_enabled=override,
        )
        db_session.add(level)
        levels.append(level)
    db_session.commit()
    return SimpleNamespace(l1=levels[0], l2=levels[1], l3=levels[2], all=levels)


@pytest.fixture(scope='function')
def statuses(db_session, company):
    rows = [
        ("ORDER_RETURN_CREATED", "Return Created"),
        ("APPROVAL_PENDING", "Level 1 Approval Pending"),
        ("APPROVAL_PENDING", "Level 2 Approval Pending"),
        ("APPROVAL_PENDING", "Level 3 Approval Pending"),
        ("APPROVER_COMPLETED", "Approval Completed"),
        ("ORDER_RETURN_CANCELLED", "Return Cancelled"),
    ]
    created = []
    for sub_category, value in rows:
        row = StatusMessage(company_id=company.id, category_id=CATEGORY, sub_category_id=sub_category, value=value)
        db_session.add(row)
        created.append(row)
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def inventory(db_session, company):
    lines = {}
    for item_id in (1, 2):
        line = InventoryLine(company_id=company.id, purchase_order_id=PURCHASE_ORDER_ID, item_id=item_id, item_qty=50)
        db_session.add(line)
        lines[item_id] = line
    db_session.commit()
    return lines


@pytest.fixture(scope='function')
def seed(db_session, company, roles, users, ladder, statuses, inventory):
    """Everything a purchase return needs."""
    return SimpleNamespace(
        company=company,
        roles=roles,
        users=users,
        ladder=ladder,
        statuses=statuses,
        inventory=inventory,
    )


@pytest.fixture(scope='function')
def make_return(seed):
    """Factory: create a purchase return raised by the clerk (5 x item 1, 3 x item 2)."""
    from garage.services import return_service

    def _make(items=None, user=None):
        outcome = return_service.create_return(
            company_id=seed.company.id,
            user_id=(user or seed.users.clerk).id,
            purchase_order_id=PURCHASE_ORDER_ID,
            items=items or [
                {"item_id": 1, "returned_qty": 5, "unit_price": "10.00"},
                {"item_id": 2, "returned_qty": 3, "unit_price": "4.50"},
            ],
            supplier_name="Acme Parts",
        )
        return outcome.purchase_return

    return _make


def get_auth_token(client, username: str, password: str = PASSWORD, company_code: str = "GARAGE") -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'company_code': company_code,
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(client, seed):
    """Factory: log a seeded user in and return Authorization headers."""
    def _headers(user):
        token = get_auth_token(client, user.username)
        assert token, f"login failed for {user.username}"
        return auth_headers(token)

    return _headers
