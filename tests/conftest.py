import os

os.environ["DATABASE_URL"] = "sqlite:///./test_temp.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("RESEND_API_KEY", None)

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from app.auth import create_access_token, hash_password
from app.database import Database, get_db
from app.main import app as fastapi_app
from app.models import Product, Role, ShippingAddress, User

TEST_PASSWORD = "Password1"


@pytest.fixture
def database():
    database = Database(os.environ["DATABASE_URL"])
    database.create_all()
    yield database
    database.drop_all()
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def client(database):
    def override_get_db():
        session = database.session()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def make_user(db, email="user@example.com", name="Jane Doe", role=Role.USER, with_address=True, verified=True):
    user = User(
        email=email,
        name=name,
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        is_verified=verified,
    )
    if with_address:
        user.shipping_address = ShippingAddress(
            address="12 Market Street", state="Lagos", country="Nigeria", postal_code="100001"
        )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_product(db, name="Desk Lamp", price="10.00", published=True):
    product = Product(name=name, description=f"A {name.lower()}", price=Decimal(price), is_published=published)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def login_as(client, user):
    client.headers["Authorization"] = f"Bearer {create_access_token(user.id)}"


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", name="Admin", role=Role.ADMIN)
