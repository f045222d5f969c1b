from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional, Sequence, Tuple
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiError(RuntimeError):
	status_code = 502


class GeminiNotConfigured(GeminiError):
	status_code = 503


def _split_csv(value: Optional[str]) -> List[str]:
	return [item.strip() for item in (value or "").split(",") if item.strip()]


def resolve_candidates(
	primary: Optional[str] = None,
	fallbacks: Optional[Sequence[str]] = None,
	api_versions: Optional[Sequence[str]] = None,
) -> List[Tuple[str, str]]:
	"""Return the ordered (api_version, model) pairs to try for one request.

	Every model is tried under the first API version before moving on to the
	next version. Duplicates are dropped, first occurrence wins.
	"""
	models: List[str] = []
	for name in [primary or settings.gemini_model, *(fallbacks if fallbacks is not None else _split_csv(settings.gemini_fallback_models))]:
		if name and name not in models:
			models.append(name)
	versions = list(api_versions) if api_versions is not None else _split_csv(settings.gemini_api_versions)
	if not versions:
		versions = ["v1beta"]
	return [(version, model) for version in versions for model in models]


def extract_text(data: Dict[str, Any]) -> str:
	try:
		parts = data["candidates"][0]["content"]["parts"]
	except (KeyError, IndexError, TypeError):
		return ""
	if not isinstance(parts, list):
		return ""
	return " ".join(str(p.get("text") or "") for p in parts if isinstance(p, dict)).strip()


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		candidates: Optional[List[Tuple[str, str]]] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise GeminiNotConfigured("Gemini API key not configured on the server")
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self.candidates = candidates or resolve_candidates()
		self._client = httpx.AsyncClient(timeout=timeout or settings.gemini_timeout, transport=transport)

	def _url_for(self, version: str, model: str) -> str:
		return f"{self.base_url}/{version}/models/{model}:generateContent"

	async def generate(self, prompt: str, *, temperature: Optional[float] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if temperature is not None:
			payload["generationConfig"] = {"temperature": temperature}
		last_error: Optional[Exception] = None
		for version, model in self.candidates:
			try:
				r = await self._client.post(self._url_for(version, model), params={"key": self.api_key}, json=payload)
				r.raise_for_status()
				return extract_text(r.json())
			except httpx.HTTPStatusError as http_err:
				last_error = RuntimeError(f"({http_err.response.status_code}) {http_err.response.text}")
			except (httpx.HTTPError, httpx.InvalidURL, ValueError) as err:
				last_error = err
			logger.warning("Gemini %s/%s failed: %s", version, model, last_error)
		raise GeminiError(f"Gemini request failed for all models tried. Last error: {last_error}")

	async def aclose(self) -> None:
		await self._client.aclose()

	async def __aenter__(self) -> "GeminiClient":
		return self

	async def __aexit__(self, *exc_info) -> None:
		await self.aclose()
