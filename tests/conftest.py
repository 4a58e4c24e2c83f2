import pytest
from datetime import date, timedelta
from decimal import Decimal
import uuid

from sqlalchemy.pool import StaticPool

from config import Config
from pharmapos import create_app
from pharmapos.database import Base, create_all, get_session
from pharmapos.models import (
    Organization, AppUser, Membership, PosRole, Medicine, Customer, Supplier
)


class TestingConfig(Config):
    """In-memory SQLite, no CSRF, no Redis."""
    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    }
    # Fixture objects stay readable after the code under test commits
    SQLALCHEMY_SESSION_OPTIONS = {'expire_on_commit': False}
    COST_PRICE_FALLBACK_RATIO = '0.7'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app(TestingConfig)
    with app.app_context():
        create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session shared with the application (same thread)."""
    return get_session()


@pytest.fixture(autouse=True)
def _clean_database(app):
    """Empty every table after each test."""
    yield
    db_session = get_session()
    db_session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        db_session.execute(table.delete())
    db_session.commit()
    db_session.remove()


# =====================================================
# ORGANIZATIONS AND USERS
# =====================================================

def _make_organization(session, label):
    suffix = str(uuid.uuid4())[:8]
    organization = Organization(
        slug=f'{label}-{suffix}',
        name=f'{label.title()} Pharmacy {suffix}',
        active=True
    )
    session.add(organization)
    session.commit()
    return organization


def _make_member(session, organization, role, label):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{label}-{suffix}@test.com',
        full_name=label.title(),
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.flush()

    session.add(Membership(
        user_id=user.id,
        organization_id=organization.id,
        role=role,
        active=True
    ))
    session.commit()
    return user


@pytest.fixture(scope='function')
def organization(session):
    """First test organization."""
    return _make_organization(session, 'alpha')


@pytest.fixture(scope='function')
def organization2(session):
    """Second organization for isolation tests."""
    return _make_organization(session, 'beta')


@pytest.fixture(scope='function')
def admin_user(session, organization):
    return _make_member(session, organization, PosRole.ADMIN.value, 'admin')


@pytest.fixture(scope='function')
def counter_user(session, organization):
    return _make_member(session, organization, PosRole.COUNTER.value, 'counter')


@pytest.fixture(scope='function')
def dealer_user(session, organization):
    return _make_member(session, organization, PosRole.DEALER.value, 'dealer')


@pytest.fixture(scope='function')
def warehouse_user(session, organization):
    return _make_member(session, organization, PosRole.WAREHOUSE.value, 'warehouse')


@pytest.fixture(scope='function')
def admin_user2(session, organization2):
    """Admin of the second organization."""
    return _make_member(session, organization2, PosRole.ADMIN.value, 'admin2')


# =====================================================
# CLIENTS
# =====================================================

def login_client(app, user, organization):
    """Test client whose session is logged in to `organization`."""
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['organization_id'] = organization.id
    return client


@pytest.fixture(scope='function')
def authenticated_client(app, admin_user, organization):
    """Client logged in as ADMIN of the first organization."""
    return login_client(app, admin_user, organization)


@pytest.fixture(scope='function')
def counter_client(app, counter_user, organization):
    return login_client(app, counter_user, organization)


@pytest.fixture(scope='function')
def dealer_client(app, dealer_user, organization):
    return login_client(app, dealer_user, organization)


@pytest.fixture(scope='function')
def warehouse_client(app, warehouse_user, organization):
    return login_client(app, warehouse_user, organization)


@pytest.fixture(scope='function')
def authenticated_client2(app, admin_user2, organization2):
    """Client logged in as ADMIN of the second organization."""
    return login_client(app, admin_user2, organization2)


# =====================================================
# CATALOG
# =====================================================

@pytest.fixture(scope='function')
def supplier(session, organization):
    supplier = Supplier(
        organization_id=organization.id,
        name='MedSupply Distributors',
        phone='9800000001',
        active=True
    )
    session.add(supplier)
    session.commit()
    return supplier


@pytest.fixture(scope='function')
def paracetamol(session, organization):
    """Price 10.00, cost 6.00, GST 0.50 per unit, 100 in stock."""
    medicine = Medicine(
        organization_id=organization.id,
        name='Paracetamol 500mg',
        generic_name='Acetaminophen',
        manufacturer='Acme Pharma',
        batch_number='PCM-001',
        category='Analgesic',
        selling_price=Decimal('10.00'),
        cost_price=Decimal('6.00'),
        gst_per_unit=Decimal('0.50'),
        quantity=100,
        low_stock_threshold=10,
        expiry_date=date.today() + timedelta(days=365),
        is_active=True
    )
    session.add(medicine)
    session.commit()
    return medicine


@pytest.fixture(scope='function')
def amoxicillin(session, organization):
    """Price 85.50, no recorded cost, GST 4.28 per unit, 5 in stock (low)."""
    medicine = Medicine(
        organization_id=organization.id,
        name='Amoxicillin 250mg',
        generic_name='Amoxicillin',
        manufacturer='Beta Labs',
        batch_number='AMX-17',
        category='Antibiotic',
        selling_price=Decimal('85.50'),
        cost_price=None,
        gst_per_unit=Decimal('4.28'),
        quantity=5,
        low_stock_threshold=10,
        expiry_date=date.today() + timedelta(days=20),
        is_active=True
    )
    session.add(medicine)
    session.commit()
    return medicine


@pytest.fixture(scope='function')
def medicine_org2(session, organization2):
    """Medicine belonging to the second organization."""
    medicine = Medicine(
        organization_id=organization2.id,
        name='Cetirizine 10mg',
        batch_number='CTZ-9',
        selling_price=Decimal('4.00'),
        cost_price=Decimal('2.00'),
        gst_per_unit=Decimal('0'),
        quantity=50,
        low_stock_threshold=5,
        is_active=True
    )
    session.add(medicine)
    session.commit()
    return medicine


@pytest.fixture(scope='function')
def customer(session, organization):
    customer = Customer(
        organization_id=organization.id,
        name='Ravi Kumar',
        phone='9811111111',
        email='ravi@example.com',
        active=True
    )
    session.add(customer)
    session.commit()
    return customer
