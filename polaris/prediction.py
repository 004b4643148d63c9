"""
Prediction client for a chat-completion style endpoint.

One POST per call, bounded timeout, no retries. Failures come back as a
tagged PredictionResult; nothing is raised past this module.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .router.manifest import API_KEY_SETTING, MODEL_SETTING

logger = logging.getLogger(__name__)

BODY_EXCERPT_CHARS = 500


class PredictionErrorKind(str, Enum):
    CONFIG = "config"
    HTTP = "http"
    MALFORMED = "malformed"
    TRANSPORT = "transport"


@dataclass
class PredictionResult:
    ok: bool
    text: str = ""
    kind: Optional[PredictionErrorKind] = None
    status: Optional[int] = None
    error: str = ""

    @classmethod
    def failure(cls, kind: PredictionErrorKind, error: str, status: Optional[int] = None) -> "PredictionResult":
        return cls(ok=False, kind=kind, error=error, status=status)


class PredictionClient:
    """Thin wrapper around the external model endpoint."""

    def __init__(
        self,
        config_store,
        endpoint: str,
        timeout_seconds: float = 30,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ):
        self.config_store = config_store
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def close(self):
        """Close aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _post(self, payload: Dict[str, Any], api_key: str) -> Tuple[int, str]:
        """Issue the HTTP call; returns (status, body text)."""
        session = await self._get_session()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        async with session.post(self.endpoint, json=payload, headers=headers) as response:
            return response.status, await response.text()

    def _fail(self, prompt_name: str, kind: PredictionErrorKind, error: str,
              status: Optional[int] = None, body: str = "") -> PredictionResult:
        logger.error(
            f"Prediction '{prompt_name}' failed ({kind.value}): {error}",
            extra={"evt": "prediction_error", "details": {
                "prompt": prompt_name,
                "kind": kind.value,
                "status": status,
                "body": body[:BODY_EXCERPT_CHARS],
            }},
        )
        return PredictionResult.failure(kind, error, status=status)

    async def predict(self, system_prompt: str, user_text: str, prompt_name: str = "adhoc") -> PredictionResult:
        """
        Run one prompt/response exchange.

        Args:
            system_prompt: System instruction
            user_text: User message
            prompt_name: Identifies the prompt in logs (the prompt body is never logged)

        Returns:
            PredictionResult with the stripped reply text, or a failure kind
        """
        settings_result = self.config_store.load_settings()
        if not settings_result.ok:
            return self._fail(prompt_name, PredictionErrorKind.CONFIG, settings_result.error)

        values = settings_result.value
        api_key = values.get(API_KEY_SETTING)
        model = values.get(MODEL_SETTING)
        if not api_key or not model:
            return self._fail(
                prompt_name,
                PredictionErrorKind.CONFIG,
                f"{API_KEY_SETTING} or {MODEL_SETTING} not configured in Settings.",
            )

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            status, body = await self._post(payload, api_key)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return self._fail(prompt_name, PredictionErrorKind.TRANSPORT, f"{type(e).__name__}: {e}")

        if status < 200 or status >= 300:
            return self._fail(
                prompt_name,
                PredictionErrorKind.HTTP,
                f"API Error {status}: {body[:BODY_EXCERPT_CHARS]}",
                status=status,
                body=body,
            )

        try:
            content = json.loads(body)["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            return self._fail(
                prompt_name,
                PredictionErrorKind.MALFORMED,
                "Response has no choices[0].message.content.",
                status=status,
                body=body,
            )

        logger.debug(f"Prediction '{prompt_name}' returned {len(content)} chars")
        return PredictionResult(ok=True, text=content.strip(), status=status)
