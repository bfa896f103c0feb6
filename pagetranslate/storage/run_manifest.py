from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pagetranslate.pipeline.types import PageReport

MANIFEST_FILE_NAME = "run.json"


def update_run_manifest(
    *,
    output_dir: Path | str,
    reports: Sequence[PageReport],
    run_id: str | None = None,
) -> dict[str, Any]:
    """Merge page results into ``run.json``.

    Pages are keyed by page number, so re-running a single failed page
    replaces only its own entry.
    """
    path = get_manifest_path(output_dir)
    current = read_run_manifest(output_dir=output_dir)
    timestamp = _utc_now()

    pages: dict[str, Any] = {}
    for report in reports:
        outcome = report.outcome
        pages[str(report.job.page_number)] = {
            "status": outcome.kind,
            "source_file": report.job.file_name,
            "attempts": outcome.attempts,
            "reason": outcome.reason,
            "error_code": outcome.error_code,
            "updated_at": timestamp,
        }

    updates: dict[str, Any] = {"pages": pages, "updated_at": timestamp}
    if reports:
        updates["total_pages"] = reports[-1].total_pages
    if run_id is not None:
        updates["last_run_id"] = run_id
    if not current:
        updates["created_at"] = timestamp

    merged = _deep_merge(current, updates)
    merged["summary"] = _summarize(merged.get("pages", {}))
    _write_json(path, merged)
    return merged


def read_run_manifest(*, output_dir: Path | str) -> dict[str, Any]:
    path = get_manifest_path(output_dir)
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"Manifest root must be an object: {path}")

    return parsed


def get_manifest_path(output_dir: Path | str) -> Path:
    return Path(output_dir) / MANIFEST_FILE_NAME


def failed_pages(manifest: dict[str, Any]) -> list[int]:
    pages = manifest.get("pages", {})
    if not isinstance(pages, dict):
        return []
    return sorted(
        int(number)
        for number, entry in pages.items()
        if isinstance(entry, dict) and entry.get("status") != "accepted"
    )


def _summarize(pages: dict[str, Any]) -> dict[str, int]:
    accepted = sum(
        1
        for entry in pages.values()
        if isinstance(entry, dict) and entry.get("status") == "accepted"
    )
    return {"accepted": accepted, "exhausted": len(pages) - accepted}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in updates.items():
        existing = result.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            result[key] = _deep_merge(existing, value)
        else:
            result[key] = value
    return result


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()
