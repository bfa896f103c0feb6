from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pagetranslate.utils.error_taxonomy import ErrorCode

AttemptStatus = Literal["accepted", "retryable", "fatal"]
OutcomeKind = Literal["accepted", "exhausted"]
RetryTier = Literal["page", "transport"]

FAILURE_MARKER = "| ERROR: No valid translation returned."


@dataclass(frozen=True, slots=True)
class PageJob:
    image_path: Path
    page_number: int
    mime_type: str = "image/png"

    @property
    def file_name(self) -> str:
        return self.image_path.name


@dataclass(frozen=True, slots=True)
class AttemptResult:
    """Tagged result of one attempt, passed by value between retry tiers.

    ``transient`` marks failures raised by the transport layer (HTTP status,
    timeouts, malformed bodies). Only those are retried by the transport tier;
    everything else is left to the page tier.
    """

    status: AttemptStatus
    content: str | None = None
    reason: str | None = None
    error_code: ErrorCode | None = None
    transient: bool = False

    @property
    def success(self) -> bool:
        return self.status == "accepted"

    @property
    def retryable(self) -> bool:
        return self.status == "retryable"

    @classmethod
    def accepted(cls, content: str) -> AttemptResult:
        return cls(status="accepted", content=content)

    @classmethod
    def retry(
        cls, reason: str, *, error_code: ErrorCode, transient: bool = False
    ) -> AttemptResult:
        return cls(
            status="retryable",
            reason=reason,
            error_code=error_code,
            transient=transient,
        )

    @classmethod
    def fatal(cls, reason: str, *, error_code: ErrorCode) -> AttemptResult:
        return cls(status="fatal", reason=reason, error_code=error_code)


@dataclass(frozen=True, slots=True)
class TranslationOutcome:
    kind: OutcomeKind
    text: str | None = None
    reason: str | None = None
    error_code: ErrorCode | None = None
    attempts: int = 0

    @property
    def is_accepted(self) -> bool:
        return self.kind == "accepted"

    @classmethod
    def accepted(cls, text: str, *, attempts: int = 1) -> TranslationOutcome:
        return cls(kind="accepted", text=text, attempts=attempts)

    @classmethod
    def exhausted(
        cls,
        reason: str,
        *,
        error_code: ErrorCode | None = None,
        attempts: int = 0,
    ) -> TranslationOutcome:
        return cls(
            kind="exhausted", reason=reason, error_code=error_code, attempts=attempts
        )

    def render_text(self, file_name: str) -> str:
        if self.kind == "accepted":
            return self.text or ""
        return (
            f"{FAILURE_MARKER} | Reason: {self.reason or 'unknown error'}. "
            f"Source file: {file_name} |"
        )


@dataclass(frozen=True, slots=True)
class RetryBudget:
    page_attempts: int = 4
    transport_attempts: int = 6

    def __post_init__(self) -> None:
        if self.page_attempts < 1:
            raise ValueError(f"page_attempts must be >= 1, got {self.page_attempts}")
        if self.transport_attempts < 1:
            raise ValueError(
                f"transport_attempts must be >= 1, got {self.transport_attempts}"
            )


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    ok: bool
    errors: list[str]
    text: str | None = None

    @property
    def failure_reason(self) -> str | None:
        if self.ok:
            return None
        return "; ".join(self.errors)


@dataclass(frozen=True, slots=True)
class RetryNotice:
    tier: RetryTier
    page_number: int
    attempt: int
    delay_seconds: float
    reason: str


@dataclass(frozen=True, slots=True)
class PageReport:
    job: PageJob
    outcome: TranslationOutcome
    index: int
    selection_count: int
    total_pages: int

    @property
    def progress(self) -> float:
        return self.index / self.selection_count


@dataclass(frozen=True, slots=True)
class PageSelection:
    jobs: list[PageJob]
    total_pages: int
