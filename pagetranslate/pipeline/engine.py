from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Protocol, Sequence

from pagetranslate.logging import clear_log_context, set_log_context
from pagetranslate.pipeline.page_attempts import PageAttemptLoop
from pagetranslate.pipeline.page_images import select_pages
from pagetranslate.pipeline.transport import (
    PageClient,
    RetryObserver,
    TransportAttemptLoop,
)
from pagetranslate.pipeline.types import (
    PageJob,
    PageReport,
    RetryBudget,
    TranslationOutcome,
)
from pagetranslate.pipeline.validate_output import ValidationRules
from pagetranslate.utils.backoff import PAGE_BACKOFF, TRANSPORT_BACKOFF, BackoffSchedule
from pagetranslate.utils.cancellation import (
    CancellableSleeper,
    TranslationCancelledError,
)
from pagetranslate.utils.error_taxonomy import build_error_details

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_REASON = "missing credential"
DEFAULT_INTER_PAGE_DELAY_SECONDS = 2.0


class ArtifactRenderer(Protocol):
    def render_page(self, report: PageReport) -> object: ...

    def finalize(self, reports: Sequence[PageReport]) -> object: ...


@dataclass(frozen=True, slots=True)
class EngineOptions:
    budget: RetryBudget = RetryBudget()
    rules: ValidationRules = ValidationRules()
    inter_page_delay_seconds: float = DEFAULT_INTER_PAGE_DELAY_SECONDS
    page_schedule: BackoffSchedule = PAGE_BACKOFF
    transport_schedule: BackoffSchedule = TRANSPORT_BACKOFF


class TranslationRetrievalEngine:
    """Translate a page range sequentially, one terminal outcome per page.

    All waits go through one ``CancellableSleeper``; cancelling it stops the
    batch after the reports already produced.
    """

    def __init__(
        self,
        *,
        client: PageClient,
        prompt: str,
        options: EngineOptions | None = None,
        sleeper: CancellableSleeper | None = None,
        on_retry: RetryObserver | None = None,
    ) -> None:
        self.client = client
        self.prompt = prompt
        self.options = options or EngineOptions()
        self.sleeper = sleeper or CancellableSleeper()
        self.page_loop = PageAttemptLoop(
            transport=TransportAttemptLoop(
                client=client,
                max_attempts=self.options.budget.transport_attempts,
                schedule=self.options.transport_schedule,
                sleep_fn=self.sleeper.sleep,
                on_retry=on_retry,
            ),
            rules=self.options.rules,
            max_attempts=self.options.budget.page_attempts,
            schedule=self.options.page_schedule,
            sleep_fn=self.sleeper.sleep,
            on_retry=on_retry,
        )

    def cancel(self) -> None:
        self.sleeper.cancel()

    def iter_pages(
        self, images_dir: Path | str, start_page: int, end_page: int
    ) -> Iterator[PageReport]:
        # Range, directory and selection errors raise before the first page.
        selection = select_pages(images_dir, start_page, end_page)
        return self._iter_selection(selection.jobs, selection.total_pages)

    def translate_range(
        self,
        images_dir: Path | str,
        start_page: int,
        end_page: int,
        *,
        renderer: ArtifactRenderer,
        on_progress: Callable[[float], None] | None = None,
    ) -> list[PageReport]:
        reports: list[PageReport] = []
        for report in self.iter_pages(images_dir, start_page, end_page):
            renderer.render_page(report)
            reports.append(report)
            if on_progress is not None:
                on_progress(report.progress)

        if reports and not self.sleeper.cancelled:
            renderer.finalize(reports)
        return reports

    def translate_page(self, job: PageJob) -> TranslationOutcome:
        if not self.client.has_credential:
            logger.error(
                "Page %s: API key is not configured, skipping call", job.page_number
            )
            return TranslationOutcome.exhausted(
                MISSING_CREDENTIAL_REASON, error_code="CONFIG_ERROR"
            )
        try:
            return self.page_loop.run(job=job, prompt=self.prompt)
        except TranslationCancelledError:
            raise
        except Exception as error:  # noqa: BLE001
            # One broken page must not end the batch; it gets a failure artifact.
            logger.error(
                "Page %s: unexpected error (%s)",
                job.page_number,
                build_error_details(error),
                exc_info=True,
            )
            return TranslationOutcome.exhausted(
                f"unexpected error: {type(error).__name__}: {error}",
                error_code="UNKNOWN_ERROR",
            )

    def _iter_selection(
        self, jobs: list[PageJob], total_pages: int
    ) -> Iterator[PageReport]:
        selection_count = len(jobs)
        logger.info(
            "Translating %s page(s) of %s", selection_count, total_pages
        )
        try:
            for index, job in enumerate(jobs, start=1):
                self.sleeper.check()
                set_log_context(page=job.page_number, stage="page")
                outcome = self.translate_page(job)
                _log_outcome(job, outcome)
                yield PageReport(
                    job=job,
                    outcome=outcome,
                    index=index,
                    selection_count=selection_count,
                    total_pages=total_pages,
                )
                if index < selection_count:
                    self.sleeper.sleep(self.options.inter_page_delay_seconds)
        except TranslationCancelledError:
            logger.warning("Translation cancelled, remaining pages skipped")
        finally:
            clear_log_context(["page", "stage"])


def _log_outcome(job: PageJob, outcome: TranslationOutcome) -> None:
    if outcome.is_accepted:
        logger.info(
            "Page %s translated after %s attempt(s)",
            job.page_number,
            outcome.attempts,
        )
        return
    logger.error(
        "Page %s not translated: %s (source %s)",
        job.page_number,
        outcome.reason,
        job.file_name,
        extra={"reason": outcome.reason},
    )
