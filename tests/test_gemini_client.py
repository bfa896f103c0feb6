from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pagetranslate.llm_client.gemini_client import (
    GeminiPageClient,
    extract_candidate_text,
)
from pagetranslate.utils.error_taxonomy import (
    MalformedResponseError,
    MissingCredentialError,
)
from tests.fakes import make_job


class FakeGenerateService:
    def __init__(self, response: Any) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return self.response


class FakeSdkResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self.payload = payload

    def model_dump(self, *, mode: str, exclude_none: bool) -> dict[str, Any]:
        assert mode == "json"
        assert exclude_none is True
        return self.payload


def _payload(*parts: dict[str, Any]) -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": list(parts)}, "finishReason": "STOP"}
        ]
    }


def test_payload_builder_sends_prompt_and_inline_image() -> None:
    payload = GeminiPageClient.build_request_payload(
        prompt="translate",
        image_bytes=b"img",
        mime_type="image/jpeg",
        model="gemini-2.5-flash",
    )

    assert payload["model"] == "gemini-2.5-flash"
    parts = payload["contents"][0]["parts"]
    assert parts[0] == {"text": "translate"}
    assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": b"img"}}
    assert "config" not in payload


def test_payload_builder_adds_generation_config_when_set() -> None:
    payload = GeminiPageClient.build_request_payload(
        prompt="p",
        image_bytes=b"",
        mime_type="image/png",
        model="m",
        temperature=0.2,
        max_output_tokens=8192.0,  # type: ignore[arg-type]
    )

    assert payload["config"] == {"temperature": 0.2, "max_output_tokens": 8192}


def test_generate_page_returns_payload_and_text(tmp_path: Path) -> None:
    service = FakeGenerateService(
        FakeSdkResponse(_payload({"text": "| a "}, {"text": "| b |"}))
    )
    client = GeminiPageClient(generate_service=service, model="gemini-test")

    response = client.generate_page(job=make_job(tmp_path, 3), prompt="translate")

    assert response.text == "| a | b |"
    assert response.payload["candidates"][0]["finishReason"] == "STOP"
    assert response.elapsed_ms >= 0
    assert len(service.calls) == 1
    assert service.calls[0]["model"] == "gemini-test"
    image_part = service.calls[0]["contents"][0]["parts"][1]["inline_data"]
    assert image_part["data"] == b"\x89PNG fake image"


def test_generate_page_accepts_json_body(tmp_path: Path) -> None:
    service = FakeGenerateService('{"candidates": []}')
    client = GeminiPageClient(generate_service=service)

    response = client.generate_page(job=make_job(tmp_path), prompt="p")

    assert response.payload == {"candidates": []}
    assert response.text == ""


def test_generate_page_rejects_unexpected_body(tmp_path: Path) -> None:
    client = GeminiPageClient(generate_service=FakeGenerateService(["not", "an", "object"]))

    with pytest.raises(MalformedResponseError):
        client.generate_page(job=make_job(tmp_path), prompt="p")

    client = GeminiPageClient(generate_service=FakeGenerateService("[1, 2]"))
    with pytest.raises(MalformedResponseError):
        client.generate_page(job=make_job(tmp_path), prompt="p")


def test_missing_credential_is_reported_without_calling(tmp_path: Path) -> None:
    client = GeminiPageClient(api_key="   ")

    assert client.has_credential is False
    with pytest.raises(MissingCredentialError):
        client.generate_page(job=make_job(tmp_path), prompt="p")

    assert GeminiPageClient(api_key="key").has_credential is True


def test_extract_candidate_text_skips_thoughts_and_empty_candidates() -> None:
    payload = {
        "candidates": [
            {"content": {"parts": [{"text": "   "}]}},
            {
                "content": {
                    "parts": [
                        {"text": "thinking...", "thought": True},
                        {"text": "| row |"},
                    ]
                }
            },
        ]
    }

    assert extract_candidate_text(payload) == "| row |"
    assert extract_candidate_text({"candidates": "bad"}) == ""
    assert extract_candidate_text({}) == ""
