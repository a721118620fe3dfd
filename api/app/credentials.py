import asyncio
import logging
from typing import Optional, Protocol

import google.auth
import google.auth.exceptions
import google.auth.transport.requests

from .errors import ModelUnavailable

logger = logging.getLogger("bugsort.ai")

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class TokenProvider(Protocol):
    async def get_token(self) -> str:
        ...


class StaticTokenProvider:
    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        if not self._token:
            raise ModelUnavailable("AI_API_KEY is required for provider anthropic")
        return self._token


class GoogleTokenProvider:
    """Access tokens from Google application-default credentials, refreshed when expired."""

    def __init__(self, scopes: Optional[list] = None) -> None:
        self._scopes = scopes or [CLOUD_PLATFORM_SCOPE]
        self._credentials = None
        self._lock = asyncio.Lock()

    def _load_and_refresh(self) -> str:
        if self._credentials is None:
            self._credentials, _project = google.auth.default(scopes=self._scopes)
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    async def get_token(self) -> str:
        async with self._lock:
            try:
                token = await asyncio.to_thread(self._load_and_refresh)
            except google.auth.exceptions.GoogleAuthError as exc:
                raise ModelUnavailable(f"Failed to acquire Google access token: {exc}") from exc
        if not token:
            raise ModelUnavailable("Google credentials returned an empty access token")
        return token
