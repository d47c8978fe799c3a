import json
import logging
import time
from typing import Any

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from quizgen.core.config import Settings, get_settings
from quizgen.core.exceptions import (
    GeneratorBusyError,
    GeneratorError,
    GeneratorNotFoundError,
    GeneratorServerError,
    GeneratorUnavailableError,
    UnsupportedContentError,
)
from quizgen.services.generation.questions import extract_questions

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY_CHARS = 2000


class GenerationFallback(Exception):
    """The generator produced nothing usable; callers substitute placeholders."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def classify_status(status_code: int, body: str = "") -> GeneratorError:
    details = {"status_code": status_code}
    if status_code == 404:
        return GeneratorNotFoundError(details=details)
    if status_code in (429, 503):
        return GeneratorBusyError(details=details)
    if 400 <= status_code < 500:
        if body:
            return UnsupportedContentError(f"Webhook request error ({status_code}): {body[:200]}", details=details)
        return UnsupportedContentError(details=details)
    return GeneratorServerError(details=details)


class GeneratorClient:
    def __init__(
        self,
        webhook_url: str,
        api_key: str = "",
        timeout: float = 100.0,
        ack_timeout: float = 10.0,
        ack_max_attempts: int = 3,
        ack_backoff: float = 1.0,
        ack_backoff_max: float = 8.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.timeout = timeout
        self.ack_timeout = ack_timeout
        self.ack_max_attempts = ack_max_attempts
        self.ack_backoff = ack_backoff
        self.ack_backoff_max = ack_backoff_max
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.BaseTransport | None = None) -> "GeneratorClient":
        return cls(
            webhook_url=settings.generator_webhook_url,
            api_key=settings.generator_api_key,
            timeout=settings.generator_timeout_seconds,
            ack_timeout=settings.generator_ack_timeout_seconds,
            ack_max_attempts=settings.generator_ack_max_attempts,
            ack_backoff=settings.generator_ack_backoff_seconds,
            ack_backoff_max=settings.generator_ack_backoff_max_seconds,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _post(self, payload: dict[str, Any], timeout: float) -> httpx.Response:
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            return client.post(self.webhook_url, json=payload, headers=self._headers())

    def generate(self, payload: dict[str, Any]) -> list[dict]:
        """Call the generator and wait for questions.

        Raises ``GenerationFallback`` when the caller should use placeholder
        content, or a ``GeneratorError`` subclass for failures the user must
        act on.
        """
        started = time.monotonic()
        try:
            response = self._post(payload, self.timeout)
        except httpx.HTTPError as exc:
            logger.error(
                "generator_request_failed",
                extra={"elapsed_s": round(time.monotonic() - started, 1), "error": str(exc)},
            )
            raise GenerationFallback("network") from exc

        elapsed = round(time.monotonic() - started, 1)
        body = response.text
        logger.info("generator_responded", extra={"status_code": response.status_code, "elapsed_s": elapsed})

        if response.status_code == 504:
            logger.error("generator_gateway_timeout", extra={"body": body[:MAX_LOGGED_BODY_CHARS]})
            raise GenerationFallback("gateway_timeout")
        if not response.is_success:
            logger.error(
                "generator_error_status",
                extra={"status_code": response.status_code, "body": body[:MAX_LOGGED_BODY_CHARS]},
            )
            raise classify_status(response.status_code, body)

        if not body.strip():
            logger.error("generator_empty_body")
            raise GenerationFallback("empty_body")
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            logger.error("generator_unparsable_body", extra={"body": body[:MAX_LOGGED_BODY_CHARS]})
            raise GenerationFallback("unparsable_body") from exc

        if isinstance(data, dict) and data.get("error"):
            embedded = data.get("statusCode") or data.get("code")
            logger.error("generator_error_body", extra={"body": body[:MAX_LOGGED_BODY_CHARS]})
            if isinstance(embedded, int) and not isinstance(embedded, bool):
                if embedded == 504:
                    raise GenerationFallback("gateway_timeout")
                raise classify_status(embedded, str(data.get("error")))
            raise GeneratorServerError(f"Question generation failed: {str(data['error'])[:200]}")

        questions = extract_questions(data)
        if not questions:
            logger.warning("generator_no_questions")
            raise GenerationFallback("no_questions")
        logger.info("generator_questions_received", extra={"count": len(questions)})
        return questions

    def acknowledge(self, payload: dict[str, Any]) -> None:
        """Hand a job to the generator; only waits for it to accept the work."""
        retrying = Retrying(
            stop=stop_after_attempt(self.ack_max_attempts),
            wait=wait_exponential(multiplier=self.ack_backoff, max=self.ack_backoff_max),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        logger.warning("generator_ack_retry", extra={"attempt": number})
                    response = self._post(payload, self.ack_timeout)
        except httpx.TransportError as exc:
            logger.error("generator_ack_unreachable", extra={"error": str(exc)})
            raise GeneratorUnavailableError() from exc

        if not response.is_success:
            logger.error(
                "generator_ack_rejected",
                extra={"status_code": response.status_code, "body": response.text[:MAX_LOGGED_BODY_CHARS]},
            )
            raise GeneratorUnavailableError(
                "Failed to start quiz generation",
                details={"status_code": response.status_code},
            )


def get_generator_client() -> GeneratorClient | None:
    settings = get_settings()
    if not settings.generator_webhook_url:
        return None
    return GeneratorClient.from_settings(settings)
