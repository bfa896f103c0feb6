from __future__ import annotations

from typing import Any


def select_candidate(payload: dict[str, Any]) -> dict[str, Any] | None:
    """The candidate whose text is consumed: first with non-blank text, else the first."""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list):
        return None

    usable = [candidate for candidate in candidates if isinstance(candidate, dict)]
    for candidate in usable:
        if candidate_text(candidate).strip():
            return candidate
    return usable[0] if usable else None


def candidate_text(candidate: dict[str, Any]) -> str:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""

    texts: list[str] = []
    for part in parts:
        if not isinstance(part, dict) or part.get("thought"):
            continue
        text = part.get("text")
        if isinstance(text, str):
            texts.append(text)
    return "".join(texts)
