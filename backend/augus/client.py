from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
import httpx


class ApiError(RuntimeError):
	def __init__(self, message: str, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class TokenStore(Protocol):
	def get(self) -> Optional[str]: ...

	def set(self, token: str, *, remember: bool = False) -> None: ...

	def clear(self) -> None: ...

	@property
	def remember(self) -> bool: ...


class MemoryTokenStore:
	def __init__(self, token: Optional[str] = None) -> None:
		self._token = token
		self._remember = False

	def get(self) -> Optional[str]:
		return self._token

	def set(self, token: str, *, remember: bool = False) -> None:
		self._token = token
		self._remember = remember

	def clear(self) -> None:
		self._token = None
		self._remember = False

	@property
	def remember(self) -> bool:
		return self._remember


class FileTokenStore:
	"""Token persisted as JSON, kept between runs only when ``remember`` is set."""

	def __init__(self, path: Path) -> None:
		self.path = Path(path)
		self._token: Optional[str] = None
		self._remember = False
		if self.path.exists():
			try:
				data = json.loads(self.path.read_text(encoding="utf-8"))
			except (OSError, ValueError):
				data = {}
			self._token = data.get("token")
			self._remember = bool(data.get("remember"))

	def get(self) -> Optional[str]:
		return self._token

	def set(self, token: str, *, remember: bool = False) -> None:
		self._token = token
		self._remember = remember
		if remember:
			self.path.write_text(json.dumps({"token": token, "remember": True}), encoding="utf-8")
		elif self.path.exists():
			self.path.unlink()

	def clear(self) -> None:
		self._token = None
		self._remember = False
		if self.path.exists():
			self.path.unlink()

	@property
	def remember(self) -> bool:
		return self._remember


class ApiClient:
	def __init__(
		self,
		base_url: str,
		tokens: Optional[TokenStore] = None,
		*,
		timeout: float = 60.0,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.base_url = base_url.rstrip("/")
		self.tokens = tokens or MemoryTokenStore()
		self._client = httpx.AsyncClient(base_url=f"{self.base_url}/api", timeout=timeout, transport=transport)

	def _headers(self) -> Dict[str, str]:
		headers = {"Content-Type": "application/json"}
		token = self.tokens.get()
		if token:
			headers["Authorization"] = f"Bearer {token}"
		return headers

	async def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
		try:
			r = await self._client.request(method, path, json=body, headers=self._headers(), **kwargs)
		except httpx.RequestError as err:
			raise ApiError(f"Request failed: {err}") from err
		try:
			data = r.json()
		except ValueError:
			data = {}
		if not isinstance(data, dict):
			data = {"data": data}
		if r.is_error:
			detail = data.get("detail") or data.get("error") or "Request failed"
			raise ApiError(str(detail), r.status_code)
		return data

	async def get(self, path: str, **kwargs) -> Dict[str, Any]:
		return await self.request("GET", path, **kwargs)

	async def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
		return await self.request("POST", path, body)

	@property
	def is_authenticated(self) -> bool:
		return bool(self.tokens.get())

	async def signup(self, email: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
		return await self.post("/auth/signup", {"email": email, "password": password, "name": name})

	async def signin(self, email: str, password: str, *, remember: bool = False) -> Dict[str, Any]:
		data = await self.post("/auth/signin", {"email": email, "password": password})
		self.tokens.set(data["token"], remember=remember)
		return data

	async def forgot(self, email: str) -> Dict[str, Any]:
		try:
			return await self.post("/auth/forgot", {"email": email})
		except ApiError:
			# Some proxies drop JSON bodies; the query form is equivalent
			return await self.get("/auth/forgot", params={"email": email})

	def logout(self) -> None:
		self.tokens.clear()

	async def aclose(self) -> None:
		await self._client.aclose()
