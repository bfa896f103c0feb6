from __future__ import annotations

import time
from typing import Callable

from tenacity import Retrying, retry_if_result, stop_after_attempt

from pagetranslate.pipeline.transport import (
    RetryObserver,
    TransportAttemptLoop,
    build_retry_notifier,
    last_attempt_result,
)
from pagetranslate.pipeline.types import AttemptResult, PageJob, TranslationOutcome
from pagetranslate.pipeline.validate_output import (
    ValidationRules,
    validate_translation,
)
from pagetranslate.utils.backoff import PAGE_BACKOFF, BackoffSchedule


class PageAttemptLoop:
    """Logical attempts for one page: transport call, then validation.

    Transport failures and validator rejections meet at a single decision
    point, ``AttemptResult.retryable``. Fatal results end the page at once.
    """

    def __init__(
        self,
        *,
        transport: TransportAttemptLoop,
        rules: ValidationRules | None = None,
        max_attempts: int = 4,
        schedule: BackoffSchedule = PAGE_BACKOFF,
        sleep_fn: Callable[[float], None] = time.sleep,
        on_retry: RetryObserver | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.transport = transport
        self.rules = rules or ValidationRules()
        self.max_attempts = max_attempts
        self.schedule = schedule
        self.sleep_fn = sleep_fn
        self.on_retry = on_retry

    def run(self, *, job: PageJob, prompt: str) -> TranslationOutcome:
        attempts = 0

        def _attempt() -> AttemptResult:
            nonlocal attempts
            attempts += 1
            return self.attempt_once(job=job, prompt=prompt)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.schedule,
            retry=retry_if_result(lambda result: result.retryable),
            sleep=self.sleep_fn,
            before_sleep=build_retry_notifier(
                tier="page", job=job, on_retry=self.on_retry
            ),
            retry_error_callback=last_attempt_result,
            reraise=True,
        )
        result: AttemptResult = retrying(_attempt)

        if result.success:
            return TranslationOutcome.accepted(result.content or "", attempts=attempts)

        return TranslationOutcome.exhausted(
            result.reason or "unknown failure",
            error_code=result.error_code,
            attempts=attempts,
        )

    def attempt_once(self, *, job: PageJob, prompt: str) -> AttemptResult:
        transport_result = self.transport.run(job=job, prompt=prompt)
        if not transport_result.success:
            return transport_result

        verdict = validate_translation(transport_result.content, rules=self.rules)
        if not verdict.ok:
            return AttemptResult.retry(
                verdict.failure_reason or "invalid translation table",
                error_code="CONTENT_QUALITY",
            )
        return AttemptResult.accepted(verdict.text or "")
