from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=_new_id)
	# Stored lower-cased and trimmed
	email = Column(String(256), unique=True, index=True, nullable=False)
	# Optional for social accounts
	password_hash = Column(String(256), nullable=True)
	name = Column(String(256), nullable=True)
	google_id = Column(String(128), nullable=True)
	github_id = Column(String(128), nullable=True)
	apple_id = Column(String(128), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	def public(self) -> dict:
		return {"id": self.id, "email": self.email, "name": self.name}


class PasswordReset(Base):
	__tablename__ = "password_resets"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	# sha256 of the emailed token; the token itself is never stored
	token_hash = Column(String(64), unique=True, index=True, nullable=False)
	expires_at = Column(DateTime, nullable=False)
	used_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
