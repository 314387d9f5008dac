"""
Pytest fixtures for EMRS backend tests.

Provides an in-memory database, seeded departments and request-type
routing, one user per role, bearer-token headers, and inventory helpers.
"""

import pytest

from emrs import create_app
from emrs.extensions import db
from emrs.models import Asset, Department, Equipment, Item, User
from emrs.services import department_service
from emrs.services.access_scope import CallerContext
from emrs.services.auth_service import hash_password
from emrs.services.ledger_service import load_opening_stock
from emrs.services.session_service import create_session


PASSWORD = "Password123!"
BASE_LOCATION_ID = 1


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'EMRS_BASE_LOCATION_ID': BASE_LOCATION_ID,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is deliberately slow; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    with app.app_context():
        # Core deletes bypass the ORM guards on stock_ledger
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()
        db.session.remove()


# =============================================================================
# ORGANIZATION
# =============================================================================

@pytest.fixture(scope='function')
def departments(db_session):
    """Departments keyed by name, with request types routed to them."""
    created = {}
    for name in ("Operations", "Stores", "HSE", "Logistics", "Maintenance"):
        dept = Department(name=name)
        db_session.add(dept)
        created[name] = dept
    db_session.commit()

    department_service.map_request_type("ppe", created["HSE"].id)
    department_service.map_request_type("material", created["Stores"].id)
    department_service.map_request_type("equipment", created["Stores"].id)
    department_service.map_request_type("transport", created["Logistics"].id)
    department_service.map_request_type("maintenance", created["Maintenance"].id)
    return created


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: insert a user directly with the pre-computed hash."""
    counter = {"n": 0}

    def _make(role, department=None, name=None, is_active=True):
        counter["n"] += 1
        user = User(
            name=name or f"{role.capitalize()} {counter['n']}",
            email=f"{role}{counter['n']}@emrs.test",
            password_hash=password_hash,
            role=role,
            department_id=department.id if department is not None else None,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def users(departments, make_user):
    """One user per role plus managers for each routing target."""
    return {
        "admin": make_user("admin"),
        "hse_manager": make_user("manager", departments["HSE"]),
        "stores_manager": make_user("manager", departments["Stores"]),
        "logistics_manager": make_user("manager", departments["Logistics"]),
        "maintenance_manager": make_user("manager", departments["Maintenance"]),
        "engineer": make_user("engineer", departments["Operations"]),
        "other_engineer": make_user("engineer", departments["Logistics"]),
        "staff": make_user("staff", departments["Operations"]),
    }


@pytest.fixture(scope='function')
def callers(users):
    """CallerContext for every seeded user, keyed like users."""
    return {key: CallerContext.from_user(user) for key, user in users.items()}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: bearer-token headers for a user (no password round trip)."""
    def _headers(user):
        _, token = create_session(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(scope='function')
def auth_headers(users, headers_for):
    """Headers for every seeded user, keyed like users."""
    return {key: headers_for(user) for key, user in users.items()}


# =============================================================================
# INVENTORY
# =============================================================================

@pytest.fixture(scope='function')
def make_consumable(db_session):
    """Factory: consumable item with opening stock at the base location."""
    def _make(name="Nitrile Gloves", on_hand=10, uom="pair"):
        item = Item(name=name, is_consumable=True, default_uom=uom)
        db_session.add(item)
        db_session.flush()
        if on_hand:
            load_opening_stock(item.id, BASE_LOCATION_ID, on_hand)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def asset_item(db_session):
    """Non-consumable item with two Ready assets."""
    item = Item(name="Cordless Drill", is_consumable=False, default_uom="ea")
    db_session.add(item)
    db_session.flush()
    for n in (1, 2):
        db_session.add(Asset(item_id=item.id, tag=f"DRL-00{n}", status="Ready", location_id=BASE_LOCATION_ID))
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def equipment(departments, db_session):
    """Equipment owned by Operations and by Logistics."""
    ops = Equipment(name="Generator G1", department_id=departments["Operations"].id)
    logistics = Equipment(name="Forklift F2", department_id=departments["Logistics"].id)
    db_session.add_all([ops, logistics])
    db_session.commit()
    return {"Operations": ops, "Logistics": logistics}
