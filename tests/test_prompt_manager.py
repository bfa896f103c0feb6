from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from pagetranslate.config.settings import Settings
from pagetranslate.prompts.manager import PromptManager


def _create_prompt_version(
    *,
    root: Path,
    prompt_name: str,
    version: str,
    instruction: str,
    meta: dict[str, object] | None = None,
) -> None:
    target = root / prompt_name / version
    target.mkdir(parents=True, exist_ok=True)
    (target / "instruction.txt").write_text(instruction, encoding="utf-8")
    if meta is not None:
        (target / "meta.yaml").write_text(yaml.safe_dump(meta), encoding="utf-8")


def test_prompt_manager_discovery_and_latest_version(tmp_path: Path) -> None:
    prompts_root = tmp_path / "prompts"
    for version in ("v002", "v001", "v010"):
        _create_prompt_version(
            root=prompts_root,
            prompt_name="page_translation",
            version=version,
            instruction="End with {completion_marker}",
        )
    (prompts_root / "page_translation" / "drafts").mkdir()
    (prompts_root / "__pycache__").mkdir()

    manager = PromptManager(prompts_root)

    assert manager.list_prompt_names() == ["page_translation"]
    assert manager.list_versions("page_translation") == ["v001", "v002", "v010"]
    assert manager.latest_version("page_translation") == "v010"
    with pytest.raises(FileNotFoundError):
        manager.latest_version("missing")


def test_load_prompt_renders_completion_marker(tmp_path: Path) -> None:
    _create_prompt_version(
        root=tmp_path,
        prompt_name="page_translation",
        version="v001",
        instruction="Translate the page.\nEnd with {completion_marker}\n",
        meta={"source_language": "en", "target_language": "ru"},
    )

    prompt = PromptManager(tmp_path).load_prompt(
        prompt_name="page_translation", version="v001"
    )

    assert prompt.meta["target_language"] == "ru"
    assert prompt.render(completion_marker="[END]") == "Translate the page.\nEnd with [END]"


def test_load_prompt_rejects_bad_inputs(tmp_path: Path) -> None:
    _create_prompt_version(
        root=tmp_path,
        prompt_name="no_marker",
        version="v001",
        instruction="Translate the page.",
    )
    manager = PromptManager(tmp_path)

    with pytest.raises(ValueError):
        manager.load_prompt(prompt_name="no_marker", version="v001")
    with pytest.raises(ValueError):
        manager.load_prompt(prompt_name="no_marker", version="latest")
    with pytest.raises(FileNotFoundError):
        manager.load_prompt(prompt_name="no_marker", version="v002")


def test_bundled_prompt_loads(monkeypatch) -> None:
    monkeypatch.delenv("PAGETRANSLATE_PROMPTS_ROOT", raising=False)
    settings = Settings(_env_file=None)

    prompt = PromptManager(settings.resolved_prompts_root).load_prompt(
        prompt_name=settings.prompt_name, version=settings.prompt_version
    )
    rendered = prompt.render(completion_marker=settings.completion_marker)

    assert settings.completion_marker in rendered
    assert "{completion_marker}" not in rendered
    assert prompt.meta["source_language"] == "en"
