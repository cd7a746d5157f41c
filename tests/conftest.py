import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models
from auth import hash_password
from database import Base, get_db
from main import app


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email="customer@example.com", password="secret123", role=models.UserRole.CUSTOMER, **fields):
    user = models.User(
        email=email,
        hashed_password=hash_password(password),
        first_name=fields.pop("first_name", "Ada"),
        last_name=fields.pop("last_name", "Lovelace"),
        phone=fields.pop("phone", "+255700000000"),
        role=role,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_cylinder(db, supplier=None, name="Taifa Gas 15kg", price=50000, stock=10, weight=15, **fields):
    if supplier is None:
        supplier = models.Supplier(name="Taifa Gas", contact_person="Juma", phone="+255711111111", address="Dar es Salaam")
        db.add(supplier)
        db.flush()
    cylinder = models.GasCylinder(
        name=name,
        weight=weight,
        price=price,
        stock_quantity=stock,
        supplier_id=supplier.id,
        **fields,
    )
    db.add(cylinder)
    db.commit()
    db.refresh(cylinder)
    return cylinder


def stock_of(session_factory, cylinder_id):
    with session_factory() as session:
        return session.query(models.GasCylinder).filter(models.GasCylinder.id == cylinder_id).one().stock_quantity


@pytest.fixture
def customer(db):
    return make_user(db)


@pytest.fixture
def driver(db):
    return make_user(db, email="driver@example.com", role=models.UserRole.DRIVER, first_name="Baraka")


@pytest.fixture
def cylinder(db):
    return make_cylinder(db)


@pytest.fixture
def token(client, customer):
    response = client.post("/api/auth/login", json={"email": customer.email, "password": "secret123"})
    return response.json()["token"]


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def order_payload(customer_id, *items, **overrides):
    payload = {
        "customerId": customer_id,
        "items": [{"cylinderId": cylinder_id, "quantity": quantity} for cylinder_id, quantity in items],
        "deliveryAddress": "Plot 12, Mikocheni, Dar es Salaam",
        "deliveryLatitude": -6.7624,
        "deliveryLongitude": 39.2475,
    }
    payload.update(overrides)
    return payload
