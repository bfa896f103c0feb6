from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from pagetranslate.config.settings import Settings, get_settings
from pagetranslate.llm_client.gemini_client import GeminiPageClient
from pagetranslate.logging import set_log_context, setup_logging
from pagetranslate.pipeline.engine import EngineOptions, TranslationRetrievalEngine
from pagetranslate.pipeline.types import PageReport
from pagetranslate.pipeline.validate_output import validate_translation
from pagetranslate.prompts.manager import PromptManager, PromptSet
from pagetranslate.storage.artifacts import HtmlArtifactWriter
from pagetranslate.storage.run_manifest import (
    failed_pages,
    get_manifest_path,
    read_run_manifest,
)
from pagetranslate.utils.error_taxonomy import (
    ERROR_FRIENDLY_MESSAGES,
    EmptyPageSelectionError,
    InvalidPageRangeError,
    SourceDirectoryNotFoundError,
)

EXIT_OK = 0
EXIT_PAGES_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

LATEST_PROMPT_VERSION = "latest"


def load_prompt_set(settings: Settings) -> PromptSet:
    manager = PromptManager(settings.resolved_prompts_root)
    version = settings.prompt_version
    if version == LATEST_PROMPT_VERSION:
        version = manager.latest_version(settings.prompt_name)
    return manager.load_prompt(prompt_name=settings.prompt_name, version=version)


def build_engine(settings: Settings) -> TranslationRetrievalEngine:
    prompt_set = load_prompt_set(settings)
    client = GeminiPageClient(
        api_key=settings.google_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.request_timeout_seconds,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )
    return TranslationRetrievalEngine(
        client=client,
        prompt=prompt_set.render(completion_marker=settings.completion_marker),
        options=EngineOptions(
            budget=settings.retry_budget,
            rules=settings.validation_rules,
            inter_page_delay_seconds=settings.inter_page_delay_seconds,
        ),
    )


def run_translate(args: argparse.Namespace, settings: Settings) -> int:
    run_id = uuid.uuid4().hex[:12]
    set_log_context(run_id=run_id)

    if args.prompt_version:
        settings = settings.model_copy(update={"prompt_version": args.prompt_version})
    output_dir = Path(args.output_dir) if args.output_dir else settings.resolved_output_dir
    try:
        engine = build_engine(settings)
    except (FileNotFoundError, ValueError) as e:
        print(f"Prompt could not be loaded:\n{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    writer = HtmlArtifactWriter(output_dir, title=args.title, run_id=run_id)
    renderer = _ConsoleRenderer(writer)

    try:
        reports = engine.translate_range(
            args.images_dir,
            args.start,
            args.end,
            renderer=renderer,
        )
    except (InvalidPageRangeError, EmptyPageSelectionError) as e:
        print(f"Invalid page selection:\n{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except SourceDirectoryNotFoundError as e:
        print(f"{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        engine.cancel()
        # Pages already written stay listed in run.json for a later re-run.
        if renderer.reports:
            renderer.finalize(renderer.reports)
        print(
            f"Interrupted after {len(renderer.reports)} page(s). Output: {output_dir}",
            file=sys.stderr,
        )
        return EXIT_INTERRUPTED

    failed = [report for report in reports if not report.outcome.is_accepted]
    print(
        f"Done: {len(reports) - len(failed)} translated, {len(failed)} failed. "
        f"Output: {output_dir}"
    )
    for code in sorted({r.outcome.error_code for r in failed if r.outcome.error_code}):
        print(f"  {code}: {ERROR_FRIENDLY_MESSAGES[code]}", file=sys.stderr)
    return EXIT_PAGES_FAILED if failed else EXIT_OK


def run_validate(args: argparse.Namespace, settings: Settings) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    verdict = validate_translation(
        text,
        rules=settings.validation_rules,
        marker_stripped=args.marker_stripped,
    )
    if verdict.ok:
        print("Response is a valid translation table.")
        return EXIT_OK
    for error in verdict.errors:
        print(f"- {error}")
    return EXIT_PAGES_FAILED


def run_status(args: argparse.Namespace, settings: Settings) -> int:
    output_dir = Path(args.output_dir) if args.output_dir else settings.resolved_output_dir
    if not get_manifest_path(output_dir).exists():
        print(f"No run manifest under {output_dir}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    manifest = read_run_manifest(output_dir=output_dir)
    summary = manifest.get("summary", {})
    print(
        f"Run {manifest.get('last_run_id', '-')}: "
        f"{summary.get('accepted', 0)} accepted, {summary.get('exhausted', 0)} failed "
        f"of {manifest.get('total_pages', '?')} pages"
    )
    failed = failed_pages(manifest)
    for number in failed:
        entry = manifest["pages"][str(number)]
        print(f"  page {number} ({entry.get('source_file')}): {entry.get('reason')}")
    return EXIT_PAGES_FAILED if failed else EXIT_OK


def run_prompts(args: argparse.Namespace, settings: Settings) -> int:
    manager = PromptManager(settings.resolved_prompts_root)
    names = manager.list_prompt_names()
    if not names:
        print(f"No prompts under {manager.prompts_root}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    for name in names:
        active = " (active)" if name == settings.prompt_name else ""
        print(f"{name}{active}: {', '.join(manager.list_versions(name))}")
    return EXIT_OK


class _ConsoleRenderer:
    """Prints one line per page, then delegates to the HTML writer."""

    def __init__(self, writer: HtmlArtifactWriter) -> None:
        self.writer = writer
        self.reports: list[PageReport] = []

    def render_page(self, report: PageReport) -> Path:
        path = self.writer.render_page(report)
        self.reports.append(report)
        print(_format_report(report), flush=True)
        return path

    def finalize(self, reports: Sequence[PageReport]) -> Path:
        return self.writer.finalize(reports)


def _format_report(report: PageReport) -> str:
    outcome = report.outcome
    status = "ok" if outcome.is_accepted else f"FAILED ({outcome.reason})"
    return (
        f"[{report.progress:4.0%}] page {report.job.page_number} "
        f"({report.job.file_name}): {status}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagetranslate")
    parser.add_argument(
        "--env-file", type=str, default=".env", help="Path to .env file"
    )
    parser.add_argument("--log-level", type=str, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    # translate
    p_tr = subparsers.add_parser("translate")
    p_tr.add_argument("--images-dir", required=True)
    p_tr.add_argument("--start", type=int, required=True)
    p_tr.add_argument("--end", type=int, required=True)
    p_tr.add_argument("--output-dir", default=None)
    p_tr.add_argument("--title", default="Translation")
    p_tr.add_argument(
        "--prompt-version", default=None, help="vNNN or 'latest'"
    )

    # validate
    p_val = subparsers.add_parser("validate")
    p_val.add_argument("file")
    p_val.add_argument("--marker-stripped", action="store_true")

    # prompts
    subparsers.add_parser("prompts")

    # status
    p_st = subparsers.add_parser("status")
    p_st.add_argument("--output-dir", default=None)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if os.path.exists(args.env_file):
        load_dotenv(dotenv_path=args.env_file)

    # .env values were just loaded into the environment.
    get_settings.cache_clear()
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Config validation error:\n{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    level_name = (args.log_level or settings.log_level).upper()
    setup_logging(
        level=getattr(logging, level_name, logging.INFO), log_file=settings.log_file
    )

    if args.command == "translate":
        return run_translate(args, settings)
    if args.command == "validate":
        return run_validate(args, settings)
    if args.command == "status":
        return run_status(args, settings)
    if args.command == "prompts":
        return run_prompts(args, settings)

    parser.error(f"unknown command: {args.command}")
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
