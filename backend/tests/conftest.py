import os
import tempfile
from datetime import timedelta
from pathlib import Path

# Settings are read at import time; keep tests off real secrets and log paths
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "inventory-auth-tests.log"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import AuthConfig
from app.core.database import Base
from app.services.auth_service import AuthService
from app.services.rbac_seed import seed_rbac


def make_auth_config(**overrides) -> AuthConfig:
    values = dict(
        jwt_secret="access-secret",
        jwt_refresh_secret="refresh-secret",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        bcrypt_rounds=4,
    )
    values.update(overrides)
    return AuthConfig(**values)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_rbac(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def auth_config():
    return make_auth_config()


@pytest.fixture
def auth_service(db, auth_config):
    return AuthService(db, auth_config)
