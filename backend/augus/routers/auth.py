from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib
import logging
import secrets

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import User, PasswordReset

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/signin", auto_error=False)


class Credentials(BaseModel):
	email: Optional[str] = None
	password: Optional[str] = None
	name: Optional[str] = None


class ForgotRequest(BaseModel):
	email: Optional[str] = None


class ResetRequest(BaseModel):
	token: Optional[str] = None
	password: Optional[str] = None


def normalize_email(email: Optional[str]) -> str:
	return (email or "").strip().lower()


def _bcrypt_input(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_input(password))


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
	if not hashed_password:
		return False
	return pwd_context.verify(_bcrypt_input(plain_password), hashed_password)


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode = {
		"sub": user.id,
		"email": user.email,
		"exp": datetime.now(timezone.utc) + delta,
	}
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def user_for_token(token: Optional[str], db: Session) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	if not token:
		raise credentials_exception
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	user_id = payload.get("sub")
	if not user_id:
		raise credentials_exception
	user = db.get(User, user_id)
	if user is None:
		raise credentials_exception
	return user


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	return user_for_token(token, db)


def _auth_response(user: User) -> dict:
	return {"token": create_access_token(user), "user": user.public()}


@router.post("/signup")
async def signup(req: Credentials, db: Session = Depends(get_db)):
	email = normalize_email(req.email)
	if not email or not req.password:
		raise HTTPException(status_code=400, detail="Email and password required")
	if db.query(User).filter(User.email == email).first():
		raise HTTPException(status_code=409, detail="Email already registered")
	user = User(email=email, name=(req.name or "").strip() or None, password_hash=hash_password(req.password))
	db.add(user)
	db.commit()
	db.refresh(user)
	logger.info("user %s signed up", user.id)
	return _auth_response(user)


@router.post("/signin")
async def signin(req: Credentials, db: Session = Depends(get_db)):
	email = normalize_email(req.email)
	if not email or not req.password:
		raise HTTPException(status_code=400, detail="Email and password required")
	user = db.query(User).filter(User.email == email).first()
	if not user or not verify_password(req.password, user.password_hash):
		raise HTTPException(status_code=401, detail="Invalid credentials")
	return _auth_response(user)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
	return {"user": {**user.public(), "created_at": user.created_at.isoformat()}}


def hash_reset_token(token: str) -> str:
	return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _issue_reset(db: Session, email: Optional[str]) -> dict:
	email = normalize_email(email)
	if not email:
		raise HTTPException(status_code=400, detail="Email is required")
	user = db.query(User).filter(User.email == email).first()
	if not user:
		# Do not reveal whether the account exists
		return {"ok": True}
	db.query(PasswordReset).filter(
		PasswordReset.user_id == user.id,
		PasswordReset.used_at.is_(None),
	).delete(synchronize_session=False)
	token = secrets.token_hex(24)
	db.add(PasswordReset(
		user_id=user.id,
		token_hash=hash_reset_token(token),
		expires_at=datetime.utcnow() + timedelta(minutes=settings.reset_token_ttl_minutes),
	))
	db.commit()
	# Email delivery is not wired up; the link is handed back directly
	return {"ok": True, "resetUrl": f"/reset?token={token}"}


@router.post("/forgot")
async def forgot(req: ForgotRequest, db: Session = Depends(get_db)):
	return _issue_reset(db, req.email)


@router.get("/forgot")
async def forgot_query(email: Optional[str] = None, db: Session = Depends(get_db)):
	return _issue_reset(db, email)


@router.post("/reset")
async def reset_password(req: ResetRequest, db: Session = Depends(get_db)):
	if not req.token or not req.password:
		raise HTTPException(status_code=400, detail="Token and password required")
	pr = db.query(PasswordReset).filter(
		PasswordReset.token_hash == hash_reset_token(req.token),
		PasswordReset.used_at.is_(None),
	).first()
	if not pr:
		raise HTTPException(status_code=400, detail="Invalid token")
	if datetime.utcnow() > pr.expires_at:
		raise HTTPException(status_code=400, detail="Token expired")
	user = db.get(User, pr.user_id)
	if not user:
		raise HTTPException(status_code=400, detail="Invalid token")
	user.password_hash = hash_password(req.password)
	pr.used_at = datetime.utcnow()
	db.commit()
	return {"ok": True}
