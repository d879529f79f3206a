"""
Pytest fixtures for labflow backend tests.

Provides test database setup, tenant isolation fixtures, and test client.
"""

import pytest
from labflow import create_app
from labflow.extensions import db
from labflow.models import Tenant, Client
from labflow.services import case_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0,
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
def tenant_a(db_session):
    """Create Tenant A (first lab)."""
    tenant = Tenant(name="Lab A - Smile Works", code="SMILE", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second lab)."""
    tenant = Tenant(name="Lab B - Dental Art", code="DART", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def client_a(db_session, tenant_a):
    """Create a dentist in Tenant A."""
    c = Client(tenant_id=tenant_a.id, name="Dr. Ana Costa", email="ana@clinic-a.test", is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def client_b(db_session, tenant_b):
    """Create a dentist in Tenant B."""
    c = Client(tenant_id=tenant_b.id, name="Dr. Bruno Lima", email="bruno@clinic-b.test", is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_case(db_session):
    """
    Factory for cases created through the workflow.

    Defaults to the three-stage study model template.
    """
    def _make(tenant, dentist, **fields):
        payload = {
            "client_id": dentist.id,
            "patient_name": "Maria Silva",
            "prosthesis_type_id": "study-model",
        }
        payload.update(fields)
        return case_service.create_case(tenant.id, payload, actor_id="tech-1")

    return _make
