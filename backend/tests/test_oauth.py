import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt

from augus.main import app
from augus.models import User
from augus.routers.oauth import (
	OAuthError,
	_pick_github_email,
	apple_client_secret,
	check_state,
	get_oauth_http,
	make_state,
	upsert_user_from_profile,
)
from augus.settings import settings


def _use_http(handler):
	async def override():
		async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
			yield http

	app.dependency_overrides[get_oauth_http] = override


def _token_from(location):
	assert location.startswith(f"{settings.app_base_url}/#/oauth?")
	return parse_qs(location.split("?", 1)[1])["token"][0]


@pytest.fixture
def google(monkeypatch):
	monkeypatch.setattr(settings, "google_client_id", "gid")
	monkeypatch.setattr(settings, "google_client_secret", "gsecret")


@pytest.fixture
def github(monkeypatch):
	monkeypatch.setattr(settings, "github_client_id", "ghid")
	monkeypatch.setattr(settings, "github_client_secret", "ghsecret")


@pytest.fixture
def apple(monkeypatch):
	key = ec.generate_private_key(ec.SECP256R1())
	pem = key.private_bytes(
		serialization.Encoding.PEM,
		serialization.PrivateFormat.PKCS8,
		serialization.NoEncryption(),
	).decode()
	monkeypatch.setattr(settings, "apple_client_id", "com.example.augus")
	monkeypatch.setattr(settings, "apple_team_id", "TEAM123")
	monkeypatch.setattr(settings, "apple_key_id", "KEY123")
	monkeypatch.setattr(settings, "apple_private_key", pem)


def test_providers_reflect_configuration(client, google):
	assert client.get("/api/oauth/providers").json() == {"google": True, "github": False, "apple": False}


def test_unconfigured_provider_is_404(client):
	assert client.get("/api/oauth/github", follow_redirects=False).status_code == 404


def test_google_login_redirects_with_signed_state(client, google):
	r = client.get("/api/oauth/google", follow_redirects=False)
	assert r.status_code == 302
	location = urlparse(r.headers["location"])
	params = parse_qs(location.query)
	assert location.netloc == "accounts.google.com"
	assert params["client_id"] == ["gid"]
	assert params["redirect_uri"] == [f"{settings.api_base_url}/api/oauth/google/callback"]
	check_state(params["state"][0], "google")


def test_state_is_bound_to_provider():
	check_state(make_state("github"), "github")
	with pytest.raises(OAuthError):
		check_state(make_state("github"), "google")
	with pytest.raises(OAuthError):
		check_state("garbage", "github")
	with pytest.raises(OAuthError):
		check_state(None, "github")


def test_google_callback_links_existing_account(client, google, token, db_session):
	def handler(request):
		if request.url.host == "oauth2.googleapis.com":
			assert b"code=abc" in request.content
			return httpx.Response(200, json={"access_token": "at"})
		assert request.headers["authorization"] == "Bearer at"
		return httpx.Response(200, json={"sub": "g-1", "email": "Ada@Example.com", "name": "Ada L"})

	_use_http(handler)
	r = client.get(
		"/api/oauth/google/callback",
		params={"code": "abc", "state": make_state("google")},
		follow_redirects=False,
	)
	assert r.status_code == 302
	session_token = _token_from(r.headers["location"])
	me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {session_token}"}).json()["user"]
	assert me["email"] == "ada@example.com"
	user = db_session.query(User).filter(User.email == "ada@example.com").one()
	assert user.google_id == "g-1"
	assert user.name == "Ada"


def test_google_callback_with_bad_state_redirects_to_error(client, google):
	_use_http(lambda request: pytest.fail("no provider call expected"))
	r = client.get(
		"/api/oauth/google/callback",
		params={"code": "abc", "state": make_state("github")},
		follow_redirects=False,
	)
	assert r.status_code == 302
	assert r.headers["location"] == f"{settings.app_base_url}/#/session?error=google"


def test_google_callback_provider_failure_redirects_to_error(client, google):
	_use_http(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
	r = client.get(
		"/api/oauth/google/callback",
		params={"code": "abc", "state": make_state("google")},
		follow_redirects=False,
	)
	assert r.headers["location"].endswith("/#/session?error=google")


def test_github_callback_uses_verified_primary_email(client, github, db_session):
	def handler(request):
		path = request.url.path
		if request.url.host == "github.com":
			return httpx.Response(200, json={"access_token": "gh"})
		if path == "/user":
			return httpx.Response(200, json={"id": 42, "login": "octo", "name": None, "email": None})
		if path == "/user/emails":
			return httpx.Response(200, json=[
				{"email": "old@example.com", "verified": True, "primary": False},
				{"email": "Octo@Example.com", "verified": True, "primary": True},
			])
		return httpx.Response(404)

	_use_http(handler)
	r = client.get(
		"/api/oauth/github/callback",
		params={"code": "c", "state": make_state("github")},
		follow_redirects=False,
	)
	assert r.status_code == 302
	_token_from(r.headers["location"])
	user = db_session.query(User).filter(User.email == "octo@example.com").one()
	assert user.github_id == "42"
	assert user.name == "octo"
	assert user.password_hash is None


def test_pick_github_email_prefers_verified_primary():
	assert _pick_github_email([
		{"email": "a@x.io", "verified": False, "primary": True},
		{"email": "b@x.io", "verified": True, "primary": False},
	]) == "b@x.io"
	assert _pick_github_email([{"email": "c@x.io"}]) == "c@x.io"
	assert _pick_github_email([]) is None


def test_apple_client_secret_is_es256(apple):
	secret = apple_client_secret(now=1_700_000_000)
	header = jwt.get_unverified_header(secret)
	claims = jwt.get_unverified_claims(secret)
	assert header["alg"] == "ES256"
	assert header["kid"] == "KEY123"
	assert claims["iss"] == "TEAM123"
	assert claims["sub"] == "com.example.augus"
	assert claims["aud"] == "https://appleid.apple.com"
	assert claims["exp"] - claims["iat"] == 300


def test_apple_callback_creates_account_from_id_token(client, apple, db_session):
	id_token = jwt.encode({"sub": "apple-7", "email": "Lin@privaterelay.appleid.com"}, "irrelevant", algorithm="HS256")

	def handler(request):
		assert request.url.host == "appleid.apple.com"
		assert b"client_secret=" in request.content
		return httpx.Response(200, json={"id_token": id_token})

	_use_http(handler)
	r = client.post(
		"/api/oauth/apple/callback",
		data={
			"code": "c",
			"state": make_state("apple"),
			"user": json.dumps({"name": {"firstName": "Lin", "lastName": "Chen"}}),
		},
		follow_redirects=False,
	)
	assert r.status_code == 302
	_token_from(r.headers["location"])
	user = db_session.query(User).filter(User.email == "lin@privaterelay.appleid.com").one()
	assert user.apple_id == "apple-7"
	assert user.name == "Lin Chen"


def test_upsert_requires_email(db_session):
	with pytest.raises(OAuthError):
		upsert_user_from_profile(db_session, email=None, name="x", provider_key="google_id", provider_id="1")


def test_upsert_keeps_first_linked_provider_id(db_session):
	first = upsert_user_from_profile(db_session, email="a@b.io", name="A", provider_key="github_id", provider_id="1")
	again = upsert_user_from_profile(db_session, email="A@B.io", name="Other", provider_key="github_id", provider_id="2")
	assert again.id == first.id
	assert again.github_id == "1"
	assert again.name == "A"
