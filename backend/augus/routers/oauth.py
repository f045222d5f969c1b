from __future__ import annotations
import json
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import User
from ..settings import settings
from .auth import create_access_token, normalize_email

router = APIRouter(prefix="/api/oauth", tags=["oauth"])
logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"
APPLE_AUDIENCE = "https://appleid.apple.com"

STATE_TTL_MINUTES = 10


class OAuthError(RuntimeError):
	pass


async def get_oauth_http() -> AsyncIterator[httpx.AsyncClient]:
	async with httpx.AsyncClient(timeout=15) as client:
		yield client


def _callback_url(provider: str) -> str:
	return f"{settings.api_base_url.rstrip('/')}/api/oauth/{provider}/callback"


def _success_redirect(user: User) -> RedirectResponse:
	token = create_access_token(user)
	return RedirectResponse(f"{settings.app_base_url}/#/oauth?{urlencode({'token': token})}", status_code=302)


def _failure_redirect(provider: str) -> RedirectResponse:
	return RedirectResponse(f"{settings.app_base_url}/#/session?error={provider}", status_code=302)


def make_state(provider: str) -> str:
	payload = {
		"provider": provider,
		"nonce": secrets.token_urlsafe(16),
		"exp": datetime.now(timezone.utc) + timedelta(minutes=STATE_TTL_MINUTES),
	}
	return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def check_state(state: Optional[str], provider: str) -> None:
	if not state:
		raise OAuthError("missing state")
	try:
		payload = jwt.decode(state, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError as err:
		raise OAuthError(f"bad state: {err}") from err
	if payload.get("provider") != provider:
		raise OAuthError("state issued for another provider")


def upsert_user_from_profile(db: Session, *, email: Optional[str], name: Optional[str], provider_key: str, provider_id: str) -> User:
	email = normalize_email(email)
	if not email:
		raise OAuthError("Email not provided by provider")
	user = db.query(User).filter(User.email == email).first()
	if user is None:
		user = User(email=email, name=(name or "").strip() or None)
		setattr(user, provider_key, str(provider_id))
		db.add(user)
	elif not getattr(user, provider_key):
		setattr(user, provider_key, str(provider_id))
	db.commit()
	db.refresh(user)
	return user


@router.get("/providers")
def providers():
	return {
		"google": settings.google_enabled,
		"github": settings.github_enabled,
		"apple": settings.apple_enabled,
	}


def _require(enabled: bool, provider: str) -> None:
	if not enabled:
		raise HTTPException(status_code=404, detail=f"{provider} sign-in is not configured")


# ---- Google ----

@router.get("/google")
def google_login():
	_require(settings.google_enabled, "google")
	params = {
		"client_id": settings.google_client_id,
		"redirect_uri": _callback_url("google"),
		"response_type": "code",
		"scope": "openid email profile",
		"prompt": "select_account",
		"state": make_state("google"),
	}
	return RedirectResponse(f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}", status_code=302)


async def _google_profile(http: httpx.AsyncClient, code: str) -> dict:
	r = await http.post(GOOGLE_TOKEN_URL, data={
		"code": code,
		"client_id": settings.google_client_id,
		"client_secret": settings.google_client_secret,
		"redirect_uri": _callback_url("google"),
		"grant_type": "authorization_code",
	})
	r.raise_for_status()
	access_token = r.json()["access_token"]
	r = await http.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
	r.raise_for_status()
	return r.json()


@router.get("/google/callback")
async def google_callback(
	code: Optional[str] = None,
	state: Optional[str] = None,
	db: Session = Depends(get_db),
	http: httpx.AsyncClient = Depends(get_oauth_http),
):
	_require(settings.google_enabled, "google")
	try:
		check_state(state, "google")
		if not code:
			raise OAuthError("missing code")
		profile = await _google_profile(http, code)
		user = upsert_user_from_profile(
			db,
			email=profile.get("email"),
			name=profile.get("name"),
			provider_key="google_id",
			provider_id=profile["sub"],
		)
	except (OAuthError, httpx.HTTPError, KeyError, ValueError) as err:
		logger.warning("google sign-in failed: %s", err)
		return _failure_redirect("google")
	return _success_redirect(user)


# ---- GitHub ----

@router.get("/github")
def github_login():
	_require(settings.github_enabled, "github")
	params = {
		"client_id": settings.github_client_id,
		"redirect_uri": _callback_url("github"),
		"scope": "user:email",
		"state": make_state("github"),
	}
	return RedirectResponse(f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}", status_code=302)


def _pick_github_email(emails: list) -> Optional[str]:
	verified = [e for e in emails if isinstance(e, dict) and e.get("email") and e.get("verified")]
	for entry in verified:
		if entry.get("primary"):
			return entry["email"]
	if verified:
		return verified[0]["email"]
	for entry in emails:
		if isinstance(entry, dict) and entry.get("email"):
			return entry["email"]
	return None


async def _github_profile(http: httpx.AsyncClient, code: str) -> dict:
	r = await http.post(
		GITHUB_TOKEN_URL,
		data={
			"code": code,
			"client_id": settings.github_client_id,
			"client_secret": settings.github_client_secret,
			"redirect_uri": _callback_url("github"),
		},
		headers={"Accept": "application/json"},
	)
	r.raise_for_status()
	access_token = r.json()["access_token"]
	headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"}
	r = await http.get(f"{GITHUB_API_URL}/user", headers=headers)
	r.raise_for_status()
	profile = r.json()
	if not profile.get("email"):
		r = await http.get(f"{GITHUB_API_URL}/user/emails", headers=headers)
		r.raise_for_status()
		profile["email"] = _pick_github_email(r.json())
	return profile


@router.get("/github/callback")
async def github_callback(
	code: Optional[str] = None,
	state: Optional[str] = None,
	db: Session = Depends(get_db),
	http: httpx.AsyncClient = Depends(get_oauth_http),
):
	_require(settings.github_enabled, "github")
	try:
		check_state(state, "github")
		if not code:
			raise OAuthError("missing code")
		profile = await _github_profile(http, code)
		user = upsert_user_from_profile(
			db,
			email=profile.get("email"),
			name=profile.get("name") or profile.get("login"),
			provider_key="github_id",
			provider_id=profile["id"],
		)
	except (OAuthError, httpx.HTTPError, KeyError, ValueError) as err:
		logger.warning("github sign-in failed: %s", err)
		return _failure_redirect("github")
	return _success_redirect(user)


# ---- Apple ----

def apple_client_secret(now: Optional[int] = None) -> str:
	now = now or int(time.time())
	key = (settings.apple_private_key or "").replace("\\n", "\n")
	claims = {
		"iss": settings.apple_team_id,
		"iat": now,
		"exp": now + 300,
		"aud": APPLE_AUDIENCE,
		"sub": settings.apple_client_id,
	}
	return jwt.encode(claims, key, algorithm="ES256", headers={"kid": settings.apple_key_id})


@router.api_route("/apple", methods=["GET", "POST"])
def apple_login():
	_require(settings.apple_enabled, "apple")
	params = {
		"client_id": settings.apple_client_id,
		"redirect_uri": _callback_url("apple"),
		"response_type": "code",
		"response_mode": "form_post",
		"scope": "name email",
		"state": make_state("apple"),
	}
	return RedirectResponse(f"{APPLE_AUTHORIZE_URL}?{urlencode(params)}", status_code=303)


def _apple_name(raw_user: Optional[str]) -> Optional[str]:
	# Apple sends the name only on the first authorization, as a JSON form field
	if not raw_user:
		return None
	try:
		name = json.loads(raw_user).get("name") or {}
	except (ValueError, AttributeError):
		return None
	return " ".join(p for p in (name.get("firstName"), name.get("lastName")) if p) or None


@router.post("/apple/callback")
async def apple_callback(
	code: Optional[str] = Form(default=None),
	state: Optional[str] = Form(default=None),
	user: Optional[str] = Form(default=None),
	db: Session = Depends(get_db),
	http: httpx.AsyncClient = Depends(get_oauth_http),
):
	_require(settings.apple_enabled, "apple")
	try:
		check_state(state, "apple")
		if not code:
			raise OAuthError("missing code")
		r = await http.post(APPLE_TOKEN_URL, data={
			"code": code,
			"client_id": settings.apple_client_id,
			"client_secret": apple_client_secret(),
			"redirect_uri": _callback_url("apple"),
			"grant_type": "authorization_code",
		})
		r.raise_for_status()
		# Received straight from Apple's token endpoint over TLS
		claims = jwt.get_unverified_claims(r.json()["id_token"])
		account = upsert_user_from_profile(
			db,
			email=claims.get("email"),
			name=_apple_name(user),
			provider_key="apple_id",
			provider_id=claims["sub"],
		)
	except (OAuthError, JWTError, httpx.HTTPError, KeyError, ValueError) as err:
		logger.warning("apple sign-in failed: %s", err)
		return _failure_redirect("apple")
	return _success_redirect(account)
