import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi.testclient import TestClient
from decimal import Decimal
from typing import List, Optional
import os
import uuid

# Add project root to sys.path to allow imports from companion_api
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


from companion_api.main import app
from companion_api.db.base import Base
from companion_api.db.session import get_db
from companion_api.crud import crud_user, crud_referral
from companion_api.schemas.user import UserCreate
from companion_api.models.user import User as UserModel
from companion_api.models.payment import Payment as PaymentModel

# Use a separate SQLite database for testing
TEST_SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.create_all(bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="session")
def test_engine():
    Base.metadata.create_all(bind=engine)
    yield engine

@pytest.fixture(scope="function")
def db_session(test_engine):
    """
    Provides a database session for each test function.
    Tables are dropped and recreated first so every test starts empty.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client():
    with TestClient(app) as c:
        yield c


# --- Helpers ---

def create_user(db: Session, *, referrer: Optional[UserModel] = None, is_superuser: bool = False,
                password: str = "testpassword123") -> UserModel:
    user = crud_user.create_user(db, obj_in=UserCreate(
        email=f"user_{uuid.uuid4().hex[:8]}@example.com",
        password=password,
        is_superuser=is_superuser,
    ))
    if referrer is not None:
        crud_referral.create_edge(db, referred_user_id=user.id, referrer_id=referrer.id)
    return user

def create_chain(db: Session, depth: int) -> List[UserModel]:
    """
    Build a payer with `depth` referrers stacked above it.
    Returns [payer, r1, r2, ...] where r1 is the payer's direct referrer.
    """
    top = None
    ancestors = []
    for _ in range(depth):
        top = create_user(db, referrer=top)
        ancestors.append(top)
    payer = create_user(db, referrer=top)
    return [payer] + list(reversed(ancestors))

def create_payment(db: Session, user: UserModel, amount="100.00", status: str = "completed",
                   tokens: int = 0, stripe_session_id: Optional[str] = None,
                   kind: str = "tokens", package_id: Optional[str] = None) -> PaymentModel:
    # Built directly so tests can store amounts the checkout flow would refuse (zero, negative)
    payment = PaymentModel(
        user_id=user.id,
        amount=Decimal(str(amount)),
        currency="usd",
        status=status,
        tokens=tokens,
        stripe_session_id=stripe_session_id,
        kind=kind,
        package_id=package_id,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def get_token_headers(client: TestClient, user: UserModel, password: str = "testpassword123") -> dict:
    response = client.post("/api/v1/auth/login", data={"username": user.email, "password": password})
    if response.status_code != 200:
        raise Exception(f"Failed to log in user {user.email} during fixture setup. Status: {response.status_code}, Detail: {response.text}")
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture(scope="function")
def normal_user_token_headers(db_session: Session, client: TestClient):
    user = create_user(db_session)
    return get_token_headers(client, user), user

@pytest.fixture(scope="function")
def superuser_token_headers(db_session: Session, client: TestClient):
    user = create_user(db_session, is_superuser=True)
    return get_token_headers(client, user), user

@pytest.fixture(scope="function")
def test_normal_user(normal_user_token_headers: tuple) -> UserModel:
    return normal_user_token_headers[1]
