from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Protocol

from pagetranslate.llm_client.candidates import candidate_text, select_candidate
from pagetranslate.pipeline.types import PageJob
from pagetranslate.utils.error_taxonomy import (
    MalformedResponseError,
    MissingCredentialError,
)

DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiGenerateService(Protocol):
    def generate_content(self, **kwargs: Any) -> Any: ...


@dataclass(frozen=True, slots=True)
class PageResponse:
    payload: dict[str, Any]
    text: str
    elapsed_ms: float


class GeminiPageClient:
    """One physical ``generateContent`` call per invocation, never retried here."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        generate_service: GeminiGenerateService | None = None,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 300.0,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> None:
        self._api_key = api_key
        self._generate_service = generate_service
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._genai_client: Any = None

    @property
    def has_credential(self) -> bool:
        if self._generate_service is not None:
            return True
        return bool(self._api_key and self._api_key.strip())

    def generate_page(self, *, job: PageJob, prompt: str) -> PageResponse:
        service = self._resolve_service()
        payload = self.build_request_payload(
            prompt=prompt,
            image_bytes=job.image_path.read_bytes(),
            mime_type=job.mime_type,
            model=self.model,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )

        start_time = time.perf_counter()
        response = service.generate_content(**payload)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        response_payload = _to_dict(response)
        return PageResponse(
            payload=response_payload,
            text=extract_candidate_text(response_payload),
            elapsed_ms=elapsed_ms,
        )

    @staticmethod
    def build_request_payload(
        *,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        model: str,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": image_bytes}},
                    ],
                }
            ],
        }

        config: dict[str, Any] = {}
        if temperature is not None:
            config["temperature"] = temperature
        if max_output_tokens is not None:
            config["max_output_tokens"] = int(max_output_tokens)
        if config:
            payload["config"] = config

        return payload

    def _resolve_service(self) -> GeminiGenerateService:
        if self._generate_service is not None:
            return self._generate_service

        if not self.has_credential:
            raise MissingCredentialError(
                "Google API key is required when service is not injected"
            )

        try:
            from google import genai
        except ImportError as error:
            raise RuntimeError("google-genai package is not installed") from error

        # Created once and reused for every page.
        if self._genai_client is None:
            self._genai_client = genai.Client(
                api_key=self._api_key,
                http_options={"timeout": int(self.timeout_seconds * 1000)},
            )

        self._generate_service = self._genai_client.models
        return self._generate_service


def extract_candidate_text(payload: dict[str, Any]) -> str:
    candidate = select_candidate(payload)
    if candidate is None:
        return ""
    return candidate_text(candidate)


def _to_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value

    if isinstance(value, (str, bytes)):
        parsed = json.loads(value)
        if isinstance(parsed, dict):
            return parsed
        raise MalformedResponseError("Gemini response body is not a JSON object")

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump(mode="json", exclude_none=True)
        if isinstance(dumped, dict):
            return dumped

    raise MalformedResponseError(
        f"Unsupported Gemini response type: {type(value).__name__}"
    )
