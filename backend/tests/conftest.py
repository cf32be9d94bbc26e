"""
Pytest fixtures for salesdesk backend tests.

Provides test database setup, seeded roles and permissions, user factories
and an authenticated test client.
"""

import pytest
from salesdesk import create_app
from salesdesk.extensions import db
from salesdesk.models import CommunicationType, CommunicationYear
from salesdesk.permissions import ADMIN_ROLE, SALESPERSON_ROLE, VISITOR_ROLE
from salesdesk.services import auth_service, communication_service, permission_service, prim_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'MIGRATION_RANDOM_SEED': '42',
    })

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
def setup_roles(db_session):
    """Setup default roles and permissions."""
    auth_service.create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


@pytest.fixture(scope='function')
def make_user(db_session, setup_roles):
    """Factory: active, approved user with the given role."""
    counter = {"n": 0}

    def _make(role=SALESPERSON_ROLE, first_name=None, last_name="Test", email=None, **kwargs):
        counter["n"] += 1
        first_name = first_name or f"{role.capitalize()}{counter['n']}"
        email = email or f"{role}{counter['n']}@example.com"
        return auth_service.create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=PASSWORD,
            role_name=role,
            **kwargs,
        )

    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(ADMIN_ROLE, first_name="Ada", last_name="Admin", email="admin@example.com")


@pytest.fixture(scope='function')
def salesperson(make_user):
    return make_user(SALESPERSON_ROLE, first_name="Selin", last_name="Satış", email="selin@example.com")


@pytest.fixture(scope='function')
def other_salesperson(make_user):
    return make_user(SALESPERSON_ROLE, first_name="Omer", last_name="Kaya", email="omer@example.com")


@pytest.fixture(scope='function')
def visitor(make_user):
    return make_user(VISITOR_ROLE, first_name="Veli", last_name="Ziyaret", email="veli@example.com")


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email, PASSWORD))


@pytest.fixture(scope='function')
def salesperson_headers(client, salesperson):
    return auth_headers(get_auth_token(client, salesperson.email, PASSWORD))


@pytest.fixture(scope='function')
def other_salesperson_headers(client, other_salesperson):
    return auth_headers(get_auth_token(client, other_salesperson.email, PASSWORD))


@pytest.fixture(scope='function')
def visitor_headers(client, visitor):
    return auth_headers(get_auth_token(client, visitor.email, PASSWORD))


@pytest.fixture(scope='function')
def prim_rate(db_session, admin):
    """Active 1% prim rate."""
    return prim_service.set_rate(1, "Test rate", admin.id)


@pytest.fixture(scope='function')
def comm_types(db_session, admin):
    """Default communication types."""
    communication_service.create_default_types(admin.id)
    return db_session.query(CommunicationType).order_by(CommunicationType.sort_order).all()


@pytest.fixture(scope='function')
def comm_year(db_session, admin):
    """Active year settings for 2024 with the penalty system on."""
    year = CommunicationYear(
        year=2024,
        type="active",
        is_active=True,
        daily_entry_required=True,
        penalty_system_active=True,
        daily_penalty_points=10,
        max_penalty_points=100,
        created_by_user_id=admin.id,
    )
    db_session.add(year)
    db_session.commit()
    return year


def sale_payload(**overrides) -> dict:
    """Minimal valid satis payload."""
    data = {
        "customer_name": "Ahmet Yılmaz",
        "phone": "0532 123 45 67",
        "block_no": "A1",
        "apartment_no": "12",
        "period_no": "1",
        "contract_no": "SZL-001",
        "sale_type": "satis",
        "sale_date": "2024-03-15",
        "list_price": 100000,
        "original_list_price": 100000,
        "discount_rate": 10,
        "activity_sale_price": 95000,
        "entry_date": "01/06",
        "exit_date": "15/06",
    }
    data.update(overrides)
    return data


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
