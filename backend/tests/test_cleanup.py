from datetime import datetime, timedelta

from augus.cleanup import purge_expired_resets
from augus.models import PasswordReset, User


def test_purge_removes_expired_and_stale_used_tokens(db_session):
	now = datetime(2024, 5, 1, 12, 0, 0)
	user = User(email="ada@example.com")
	db_session.add(user)
	db_session.commit()

	def reset(key, expires_in, used_ago=None):
		db_session.add(PasswordReset(
			user_id=user.id,
			token_hash=key * 64,
			expires_at=now + expires_in,
			used_at=None if used_ago is None else now - used_ago,
		))

	reset("a", timedelta(minutes=30))
	reset("b", timedelta(minutes=-1))
	reset("c", timedelta(minutes=30), used_ago=timedelta(hours=2))
	reset("d", timedelta(minutes=30), used_ago=timedelta(days=2))
	db_session.commit()

	assert purge_expired_resets(db_session, now=now) == 2
	left = sorted(pr.token_hash[0] for pr in db_session.query(PasswordReset).all())
	assert left == ["a", "c"]
