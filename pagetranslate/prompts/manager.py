from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

VERSION_RE = re.compile(r"^v(\d{3})$")
MARKER_PLACEHOLDER = "{completion_marker}"


@dataclass(frozen=True, slots=True)
class PromptSet:
    prompt_name: str
    version: str
    instruction_text: str
    meta: dict[str, Any]
    prompt_dir: Path

    def render(self, *, completion_marker: str) -> str:
        return self.instruction_text.replace(MARKER_PLACEHOLDER, completion_marker)


class PromptManager:
    def __init__(self, prompts_root: Path | str) -> None:
        self.prompts_root = Path(prompts_root)

    def list_prompt_names(self) -> list[str]:
        if not self.prompts_root.exists():
            return []

        names: list[str] = []
        for child in self.prompts_root.iterdir():
            if not child.is_dir() or child.name.startswith("__"):
                continue
            if self.list_versions(child.name):
                names.append(child.name)
        return sorted(names)

    def list_versions(self, prompt_name: str) -> list[str]:
        prompt_dir = self.prompts_root / prompt_name
        if not prompt_dir.is_dir():
            return []

        versions = [
            child.name
            for child in prompt_dir.iterdir()
            if child.is_dir() and VERSION_RE.match(child.name)
        ]
        return sorted(versions, key=_version_to_int)

    def latest_version(self, prompt_name: str) -> str:
        versions = self.list_versions(prompt_name)
        if not versions:
            raise FileNotFoundError(f"no versions for prompt: {prompt_name}")
        return versions[-1]

    def load_prompt(self, *, prompt_name: str, version: str) -> PromptSet:
        prompt_dir = self._prompt_dir(prompt_name=prompt_name, version=version)
        instruction_path = prompt_dir / "instruction.txt"
        meta_path = prompt_dir / "meta.yaml"

        if not instruction_path.exists():
            raise FileNotFoundError(f"instruction not found: {instruction_path}")

        instruction_text = instruction_path.read_text(encoding="utf-8").strip()
        if MARKER_PLACEHOLDER not in instruction_text:
            raise ValueError(
                f"instruction must mention {MARKER_PLACEHOLDER}: {instruction_path}"
            )

        meta: dict[str, Any] = {}
        if meta_path.exists():
            parsed_meta = yaml.safe_load(meta_path.read_text(encoding="utf-8")) or {}
            if isinstance(parsed_meta, dict):
                meta = parsed_meta

        return PromptSet(
            prompt_name=prompt_name,
            version=version,
            instruction_text=instruction_text,
            meta=meta,
            prompt_dir=prompt_dir,
        )

    def _prompt_dir(self, *, prompt_name: str, version: str) -> Path:
        if not VERSION_RE.match(version):
            raise ValueError(f"Invalid prompt version format: {version}")
        return self.prompts_root / prompt_name / version


def _version_to_int(version: str) -> int:
    match = VERSION_RE.match(version)
    if match is None:
        raise ValueError(f"Invalid version format: {version}")
    return int(match.group(1))
