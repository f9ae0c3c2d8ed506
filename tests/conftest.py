import os

os.environ["ENV"] = "test"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import marketchat.models  # noqa: F401  (register tables)
from marketchat.db import Base

from tests.fixtures.message_fixtures import *  # noqa: F401,F403
from tests.fixtures.store_fixtures import *  # noqa: F401,F403


@pytest.fixture(scope="function")
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
