from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./augus.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Provider columns were added after the first local-only release
_PROVIDER_COLUMNS = ("google_id", "github_id", "apple_id")


def ensure_schema(bind=None) -> None:
	bind = bind or engine
	inspector = inspect(bind)
	if "users" not in set(inspector.get_table_names()):
		return
	cols = {c["name"] for c in inspector.get_columns("users")}
	with bind.begin() as conn:
		for name in _PROVIDER_COLUMNS:
			if name not in cols:
				conn.exec_driver_sql(f"ALTER TABLE users ADD COLUMN {name} VARCHAR(128)")
