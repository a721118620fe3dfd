import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union

import httpx

from .config import Settings, get_settings
from .credentials import GoogleTokenProvider, StaticTokenProvider, TokenProvider
from .errors import ModelRequestError, ModelResponseError, ModelUnavailable
from .models import Issue
from .taxonomy import CATEGORY_VALUES, Category, format_categories_for_prompt, validate_category

logger = logging.getLogger("bugsort.ai")

MAX_ISSUE_TEXT_CHARS = 2000
MAX_ERROR_BODY_CHARS = 800
VERTEX_ANTHROPIC_VERSION = "vertex-2023-10-16"
ANTHROPIC_API_VERSION = "2023-06-01"


@dataclass(frozen=True)
class ModelVerdict:
    classification: Category
    reason: str


class IssueClassifier(Protocol):
    async def classify_issue(self, issue: Issue) -> ModelVerdict:
        ...

    async def classify_issue_with_retry(self, issue: Issue, retries: int = 1) -> ModelVerdict:
        ...


_SENSITIVE_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "access_token",
    "token",
    "secret",
    "password",
    "x-api-key",
}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        if len(value) <= 4:
            return "****"
        return f"{value[:2]}***{value[-2:]}"
    return "***"


def _mask_sensitive_payload(payload: Any) -> Any:
    if isinstance(payload, dict):
        return {
            key: _mask_value(value) if str(key).lower() in _SENSITIVE_KEYS else _mask_sensitive_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [_mask_sensitive_payload(item) for item in payload]
    return payload


def _mask_secrets_in_text(text: str) -> str:
    masked = re.sub(r"(?i)(authorization\s*[:=]\s*bearer\s+)[^\s\"']+", r"\1***", text)
    masked = re.sub(r"(?i)(x-api-key\s*[:=]\s*)[^\s\"']+", r"\1***", masked)
    masked = re.sub(r"\bya29\.[A-Za-z0-9_\-.]+", "ya29.***", masked)
    masked = re.sub(r"\bsk-[A-Za-z0-9\-]{8,}\b", "sk-***", masked)
    return masked


def sanitize_response_body(text: str) -> str:
    trimmed = (text or "").strip()
    if not trimmed:
        return ""
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        detail = _mask_secrets_in_text(trimmed)
    else:
        detail = json.dumps(_mask_sensitive_payload(parsed), ensure_ascii=True)
    if len(detail) > MAX_ERROR_BODY_CHARS:
        detail = detail[:MAX_ERROR_BODY_CHARS] + "..."
    return detail


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    try:
        parsed = json.loads(candidate)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def build_issue_text(issue: Issue) -> str:
    return f"{issue.summary}\n\n{issue.description}"[:MAX_ISSUE_TEXT_CHARS]


def build_prompt(issue: Issue) -> str:
    return (
        "You are a bug classifier for an engineering team. "
        "Classify the following bug into ONE of these categories:\n"
        f"{format_categories_for_prompt()}\n\n"
        "Bug Summary and Description:\n"
        f"{build_issue_text(issue)}\n\n"
        "Respond with ONLY a JSON object in this exact format:\n"
        "{\n"
        f'  "classification": "one of: {", ".join(CATEGORY_VALUES)}",\n'
        '  "reason": "one-line explanation of why you chose this category"\n'
        "}"
    )


def _response_text(data: Any) -> str:
    content = data.get("content") if isinstance(data, dict) else None
    if not isinstance(content, list):
        raise ModelResponseError("Model response has no content blocks")
    text = ""
    for block in content:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            text += str(block.get("text") or "")
    if not text.strip():
        raise ModelResponseError("Model response contained no text")
    return text.strip()


class AIClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        token_provider: TokenProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self._semaphore = semaphore
        self._token_provider = token_provider
        self._settings = settings or get_settings()

    @property
    def provider(self) -> str:
        return self._settings.ai_provider.strip().lower()

    def _url(self) -> str:
        settings = self._settings
        if self.provider == "anthropic":
            base_url = settings.ai_base_url or "https://api.anthropic.com/v1"
            return f"{base_url.rstrip('/')}/messages"
        base_url = settings.ai_base_url or f"https://{settings.gcp_region}-aiplatform.googleapis.com/v1"
        return (
            f"{base_url.rstrip('/')}/projects/{settings.gcp_project}/locations/{settings.gcp_region}"
            f"/publishers/anthropic/models/{settings.ai_model}:rawPredict"
        )

    def _headers(self, token: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.provider == "anthropic":
            headers["x-api-key"] = token
            headers["anthropic-version"] = ANTHROPIC_API_VERSION
        else:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "max_tokens": self._settings.ai_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self.provider == "anthropic":
            payload["model"] = self._settings.ai_model
        else:
            payload["anthropic_version"] = VERTEX_ANTHROPIC_VERSION
        return payload

    async def invoke(self, prompt: str) -> str:
        token = await self._token_provider.get_token()
        url = self._url()
        try:
            async with self._semaphore:
                response = await self._client.post(
                    url,
                    headers=self._headers(token),
                    json=self._payload(prompt),
                    timeout=self._settings.ai_timeout,
                )
        except httpx.HTTPError as exc:
            raise ModelRequestError(None, str(exc) or exc.__class__.__name__, url) from exc

        if not response.is_success:
            raise ModelRequestError(response.status_code, sanitize_response_body(response.text), url)

        try:
            data = response.json()
        except ValueError as exc:
            detail = sanitize_response_body(response.text)
            raise ModelResponseError(
                f"Model response JSON decode failed (status {response.status_code}) | url={url} | body={detail}"
            ) from exc
        return _response_text(data)

    async def classify_issue(self, issue: Issue) -> ModelVerdict:
        text = await self.invoke(build_prompt(issue))
        extracted = extract_json(text)
        if extracted is None:
            raise ModelResponseError(f"Model response is not a JSON object: {sanitize_response_body(text)}")
        return ModelVerdict(
            classification=validate_category(extracted.get("classification")),
            reason=str(extracted.get("reason") or "").strip()[:500],
        )

    async def classify_issue_with_retry(self, issue: Issue, retries: int = 1) -> ModelVerdict:
        attempt = 0
        while True:
            try:
                return await self.classify_issue(issue)
            except ModelUnavailable:
                raise
            except ModelRequestError as exc:
                if not exc.retryable or attempt >= retries:
                    raise
                wait = 2 ** attempt
                logger.warning(
                    "LLM classify failed for %s on attempt %s/%s: %s. Retrying in %ss",
                    issue.key,
                    attempt + 1,
                    retries + 1,
                    exc,
                    wait,
                )
            except ModelResponseError as exc:
                if attempt >= retries:
                    raise
                wait = 2 ** attempt
                logger.warning(
                    "LLM response unusable for %s on attempt %s/%s: %s. Retrying in %ss",
                    issue.key,
                    attempt + 1,
                    retries + 1,
                    exc,
                    wait,
                )
            await asyncio.sleep(wait)
            attempt += 1


class UnavailableAIClient:
    """Stands in for the model tier when it is not configured; every call fails fast."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    async def classify_issue(self, issue: Issue) -> ModelVerdict:
        raise ModelUnavailable(self.reason)

    async def classify_issue_with_retry(self, issue: Issue, retries: int = 1) -> ModelVerdict:
        return await self.classify_issue(issue)


def validate_ai_settings(current: Settings) -> tuple[bool, str]:
    provider = current.ai_provider.strip().lower()
    if provider in ("", "none"):
        return False, "AI_PROVIDER is not configured"
    if provider not in ("vertex", "anthropic"):
        return False, f"Unsupported AI_PROVIDER {provider}"
    if not current.ai_model.strip():
        return False, "AI_MODEL is required for LLM classification"
    if provider == "anthropic" and not current.ai_api_key.strip():
        return False, "AI_API_KEY is required for provider anthropic"
    if provider == "vertex" and not current.gcp_project.strip():
        return False, "GCP_PROJECT is required for provider vertex"
    return True, ""


def build_ai_client(
    settings: Settings,
    client: httpx.AsyncClient,
    semaphore: asyncio.Semaphore,
    token_provider: Optional[TokenProvider] = None,
) -> Union[AIClient, UnavailableAIClient]:
    ok, reason = validate_ai_settings(settings)
    if not ok:
        logger.warning("LLM classifier unavailable: %s", reason)
        return UnavailableAIClient(reason)
    if token_provider is None:
        if settings.ai_provider.strip().lower() == "anthropic":
            token_provider = StaticTokenProvider(settings.ai_api_key)
        else:
            token_provider = GoogleTokenProvider()
    return AIClient(client, semaphore, token_provider, settings)
