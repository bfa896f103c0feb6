from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Literal

import httpx

from pagetranslate.llm_client.candidates import select_candidate

ErrorCode = Literal[
    "CONFIG_ERROR",
    "REQUEST_ERROR",
    "TRANSPORT_ERROR",
    "CONTENT_POLICY",
    "CONTENT_QUALITY",
    "UNKNOWN_ERROR",
]

ERROR_FRIENDLY_MESSAGES: dict[ErrorCode, str] = {
    "CONFIG_ERROR": "Configuration is incomplete. Check the API key and inputs.",
    "REQUEST_ERROR": "Translation API rejected the request. Check model and key.",
    "TRANSPORT_ERROR": "Translation API was unreachable or overloaded. Re-run later.",
    "CONTENT_POLICY": "Page was refused by the content policy and will not be retried.",
    "CONTENT_QUALITY": "Model output was incomplete or not a translation table.",
    "UNKNOWN_ERROR": "Unexpected error while translating the page. See the log.",
}

SAFETY_FINISH_REASONS = frozenset(
    {"SAFETY", "PROHIBITED_CONTENT", "SPII", "BLOCKLIST", "IMAGE_SAFETY"}
)
NORMAL_FINISH_REASONS = frozenset({"STOP", "FINISH_REASON_UNSPECIFIED"})

_BODY_SNIPPET_CHARS = 500


class MissingCredentialError(ValueError):
    """Raised when the translation API key is not configured."""


class InvalidPageRangeError(ValueError):
    """Raised when the requested page range is empty or inverted."""


class EmptyPageSelectionError(ValueError):
    """Raised when no page image falls into the requested range."""


class SourceDirectoryNotFoundError(FileNotFoundError):
    """Raised when the page-image directory does not exist."""


class MalformedResponseError(ValueError):
    """Raised when a response body cannot be decoded into an envelope."""


@dataclass(frozen=True, slots=True)
class HttpStatusFailure:
    status_code: int
    body: str = ""
    transport_level: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class PromptBlocked:
    block_reason: str
    transport_level: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class AbnormalFinish:
    finish_reason: str
    transport_level: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class EmptyContent:
    transport_level: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class MalformedPayload:
    detail: str = ""
    transport_level: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class RequestTimeout:
    detail: str = ""
    transport_level: ClassVar[bool] = True


FailureSignal = (
    HttpStatusFailure
    | PromptBlocked
    | AbnormalFinish
    | EmptyContent
    | MalformedPayload
    | RequestTimeout
)


@dataclass(frozen=True, slots=True)
class FailureClassification:
    retryable: bool
    reason: str
    error_code: ErrorCode
    transient: bool = False


def classify_failure(signal: FailureSignal) -> FailureClassification:
    """Map a failure signal to ``(retryable, reason)``.

    Rules are checked in priority order. Anything caused by the input itself
    (content policy, safety filter, rejected request) is final; anything caused
    by infrastructure or sampling variance is retryable.
    """
    if isinstance(signal, HttpStatusFailure):
        if is_retryable_status_code(signal.status_code):
            return FailureClassification(
                retryable=True,
                reason=f"transient transport error {signal.status_code}",
                error_code="TRANSPORT_ERROR",
                transient=True,
            )
        reason = f"HTTP error {signal.status_code}"
        if signal.body:
            reason = f"{reason}: {signal.body[:_BODY_SNIPPET_CHARS]}"
        return FailureClassification(
            retryable=False, reason=reason, error_code="REQUEST_ERROR"
        )

    if isinstance(signal, PromptBlocked):
        return FailureClassification(
            retryable=False,
            reason=f"prompt blocked by content policy: {signal.block_reason}",
            error_code="CONTENT_POLICY",
        )

    if isinstance(signal, AbnormalFinish):
        if signal.finish_reason.upper() in SAFETY_FINISH_REASONS:
            return FailureClassification(
                retryable=False,
                reason=f"response blocked by safety filter: {signal.finish_reason}",
                error_code="CONTENT_POLICY",
            )
        return FailureClassification(
            retryable=True,
            reason=f"generation stopped early: {signal.finish_reason}",
            error_code="CONTENT_QUALITY",
        )

    if isinstance(signal, EmptyContent):
        return FailureClassification(
            retryable=True, reason="empty content", error_code="CONTENT_QUALITY"
        )

    if isinstance(signal, MalformedPayload):
        return FailureClassification(
            retryable=True,
            reason="malformed payload",
            error_code="TRANSPORT_ERROR",
            transient=True,
        )

    if isinstance(signal, RequestTimeout):
        return FailureClassification(
            retryable=True,
            reason="request timeout",
            error_code="TRANSPORT_ERROR",
            transient=True,
        )

    raise TypeError(f"Unknown failure signal: {signal!r}")


def signal_from_exception(error: Exception) -> FailureSignal | None:
    """Translate a raised client error into a failure signal.

    Returns ``None`` for errors outside the taxonomy; callers re-raise those.
    """
    status_code = extract_http_status_code(error)
    if status_code is not None:
        return HttpStatusFailure(status_code=status_code, body=_error_body(error))

    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return RequestTimeout(detail=_describe(error))

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return RequestTimeout(detail=_describe(error))

    if isinstance(error, (json.JSONDecodeError, MalformedResponseError)):
        return MalformedPayload(detail=_describe(error))

    return None


def signal_from_envelope(payload: Any, *, text: str) -> FailureSignal | None:
    """Inspect a successful-status envelope for block and finish reasons."""
    if not isinstance(payload, dict):
        return MalformedPayload(detail=f"envelope is {type(payload).__name__}")

    prompt_feedback = _lookup(payload, "prompt_feedback", "promptFeedback")
    if isinstance(prompt_feedback, dict):
        block_reason = _lookup(prompt_feedback, "block_reason", "blockReason")
        if block_reason:
            return PromptBlocked(block_reason=str(block_reason))

    candidate = select_candidate(payload)
    if candidate is not None:
        finish_reason = _lookup(candidate, "finish_reason", "finishReason")
        if finish_reason and str(finish_reason).upper() not in NORMAL_FINISH_REASONS:
            return AbnormalFinish(finish_reason=str(finish_reason))

    if not text.strip():
        return EmptyContent()

    return None


def is_retryable_status_code(status_code: int) -> bool:
    return status_code in {408, 409, 429} or status_code >= 500


def extract_http_status_code(error: Exception) -> int | None:
    for field_name in ("status_code", "code", "http_status", "status"):
        value = getattr(error, field_name, None)
        parsed = _to_int_or_none(value)
        if parsed is not None and 100 <= parsed <= 599:
            return parsed

    response = getattr(error, "response", None)
    if response is not None:
        parsed = _to_int_or_none(getattr(response, "status_code", None))
        if parsed is not None:
            return parsed

    return None


def build_error_details(error: Exception) -> str:
    details: list[str] = [f"{error.__class__.__name__}: {error}"]
    status_code = extract_http_status_code(error)
    if status_code is not None:
        details.append(f"status_code={status_code}")

    for field_name in ("body", "response_body", "details"):
        value = getattr(error, field_name, None)
        if value is None:
            continue
        details.append(f"{field_name}={value}")
    return "\n".join(details)


def _error_body(error: Exception) -> str:
    for field_name in ("body", "response_body", "message"):
        value = getattr(error, field_name, None)
        if value:
            return str(value)
    return str(error)


def _describe(error: Exception) -> str:
    message = str(error)
    if message:
        return f"{error.__class__.__name__}: {message}"
    return error.__class__.__name__


def _lookup(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _to_int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
