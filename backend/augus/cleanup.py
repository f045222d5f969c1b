from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from .models import PasswordReset


def purge_expired_resets(db: Session, now: Optional[datetime] = None) -> int:
	now = now or datetime.utcnow()
	# Used tokens are kept for a day for auditing, expired ones go immediately
	used_threshold = now - timedelta(days=1)
	res = db.execute(
		delete(PasswordReset).where(
			or_(
				PasswordReset.expires_at < now,
				PasswordReset.used_at < used_threshold,
			)
		)
	)
	db.commit()
	return res.rowcount or 0
