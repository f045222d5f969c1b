import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from augus.db import Base, get_db
from augus.main import app
from augus.routers.ai import get_tutor_ai

from .fakes import FakeAI


@pytest.fixture
def db_engine():
	engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
	Base.metadata.create_all(bind=engine)
	yield engine
	engine.dispose()


@pytest.fixture
def db_session(db_engine):
	TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine, future=True)
	db = TestingSession()
	try:
		yield db
	finally:
		db.close()


@pytest.fixture
def fake_ai():
	return FakeAI()


@pytest.fixture
def client(db_engine, fake_ai):
	TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine, future=True)

	def override_get_db():
		db = TestingSession()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_tutor_ai] = lambda: fake_ai
	yield TestClient(app)
	app.dependency_overrides.clear()


@pytest.fixture
def token(client):
	r = client.post("/api/auth/signup", json={"email": "Ada@Example.com", "password": "s3cret-pass", "name": "Ada"})
	assert r.status_code == 200
	return r.json()["token"]


@pytest.fixture
def auth_headers(token):
	return {"Authorization": f"Bearer {token}"}
