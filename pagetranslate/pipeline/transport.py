from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt

from pagetranslate.llm_client.gemini_client import PageResponse
from pagetranslate.pipeline.types import AttemptResult, PageJob, RetryNotice, RetryTier
from pagetranslate.utils.backoff import TRANSPORT_BACKOFF, BackoffSchedule
from pagetranslate.utils.error_taxonomy import (
    FailureSignal,
    classify_failure,
    signal_from_envelope,
    signal_from_exception,
)

logger = logging.getLogger(__name__)

RetryObserver = Callable[[RetryNotice], None]


class PageClient(Protocol):
    @property
    def has_credential(self) -> bool: ...

    def generate_page(self, *, job: PageJob, prompt: str) -> PageResponse: ...


class TransportAttemptLoop:
    """Physical calls for one logical page attempt.

    Only transient failures (retryable HTTP status, timeouts, malformed
    bodies) are retried here. Envelope-level failures and the last transient
    failure after the budget is spent are returned as values.
    """

    def __init__(
        self,
        *,
        client: PageClient,
        max_attempts: int = 6,
        schedule: BackoffSchedule = TRANSPORT_BACKOFF,
        sleep_fn: Callable[[float], None] = time.sleep,
        on_retry: RetryObserver | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.client = client
        self.max_attempts = max_attempts
        self.schedule = schedule
        self.sleep_fn = sleep_fn
        self.on_retry = on_retry

    def run(self, *, job: PageJob, prompt: str) -> AttemptResult:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.schedule,
            retry=retry_if_result(_is_transient_failure),
            sleep=self.sleep_fn,
            before_sleep=build_retry_notifier(
                tier="transport", job=job, on_retry=self.on_retry
            ),
            retry_error_callback=last_attempt_result,
            reraise=True,
        )
        return retrying(self.attempt_once, job=job, prompt=prompt)

    def attempt_once(self, *, job: PageJob, prompt: str) -> AttemptResult:
        try:
            response = self.client.generate_page(job=job, prompt=prompt)
        except Exception as error:  # noqa: BLE001
            signal = signal_from_exception(error)
            if signal is None:
                raise
            return result_from_signal(signal)

        signal = signal_from_envelope(response.payload, text=response.text)
        if signal is not None:
            return result_from_signal(signal)

        logger.debug(
            "Page %s: response received in %.0f ms",
            job.page_number,
            response.elapsed_ms,
        )
        return AttemptResult.accepted(response.text)


def result_from_signal(signal: FailureSignal) -> AttemptResult:
    classification = classify_failure(signal)
    if classification.retryable:
        return AttemptResult.retry(
            classification.reason,
            error_code=classification.error_code,
            transient=classification.transient,
        )
    return AttemptResult.fatal(
        classification.reason, error_code=classification.error_code
    )


def build_retry_notifier(
    *,
    tier: RetryTier,
    job: PageJob,
    on_retry: RetryObserver | None,
) -> Callable[[RetryCallState], None]:
    def _notify(retry_state: RetryCallState) -> None:
        result = retry_state.outcome.result() if retry_state.outcome else None
        reason = result.reason if isinstance(result, AttemptResult) else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        notice = RetryNotice(
            tier=tier,
            page_number=job.page_number,
            attempt=retry_state.attempt_number,
            delay_seconds=delay,
            reason=reason or "unknown failure",
        )
        logger.warning(
            "Page %s: %s attempt %s failed (%s), retrying in %.1fs",
            notice.page_number,
            notice.tier,
            notice.attempt,
            notice.reason,
            notice.delay_seconds,
            extra={
                "stage": tier,
                "attempt": notice.attempt,
                "delay_s": round(notice.delay_seconds, 3),
                "reason": notice.reason,
            },
        )
        if on_retry is not None:
            on_retry(notice)

    return _notify


def last_attempt_result(retry_state: RetryCallState) -> AttemptResult:
    return retry_state.outcome.result()


def _is_transient_failure(result: AttemptResult) -> bool:
    return result.retryable and result.transient
