from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from pagetranslate.pipeline.types import ValidationVerdict

DEFAULT_COMPLETION_MARKER = "<<<END_OF_PAGE>>>"
HEADER_KEYWORDS: tuple[str, ...] = (
    "original",
    "оригинал",
    "translation",
    "перевод",
    "column",
    "колонка",
)

# Whole-cell header labels, matched exactly.
HEADER_LABELS: frozenset[str] = frozenset(
    {
        "original",
        "original text",
        "translation",
        "оригинал",
        "оригинальный текст",
        "перевод",
        "column 1",
        "column 2",
        "1-я колонка",
        "2-я колонка",
    }
)

_SEPARATOR_CELL_RE = re.compile(r"^:?-{3,}:?$")


@dataclass(frozen=True, slots=True)
class ValidationRules:
    """Acceptance thresholds for a translation table.

    The row and character floors are empirical; keep them configurable.
    """

    min_data_rows: int = 2
    min_original_chars: int = 80
    completion_marker: str = DEFAULT_COMPLETION_MARKER
    header_keywords: tuple[str, ...] = HEADER_KEYWORDS


@dataclass(frozen=True, slots=True)
class TableRow:
    cells: tuple[str, ...]

    @property
    def original(self) -> str:
        return self.cells[0]

    @property
    def translation(self) -> str:
        return self.cells[1]


def validate_translation(
    raw_text: str | None,
    *,
    rules: ValidationRules | None = None,
    marker_stripped: bool = False,
) -> ValidationVerdict:
    """Accept ``raw_text`` only if it is a complete translation table.

    Every failed check contributes its own message. ``marker_stripped`` is for
    text that already passed validation and lost its completion marker.
    """
    active_rules = rules or ValidationRules()
    text = (raw_text or "").strip()
    has_marker = active_rules.completion_marker in text
    cleaned = strip_completion_marker(text, active_rules.completion_marker)

    errors: list[str] = []
    if not cleaned:
        errors.append("response text is empty")
    else:
        errors.extend(_validate_table(cleaned, active_rules))

    if not marker_stripped and not has_marker:
        errors.append(
            f"completion marker {active_rules.completion_marker} missing; "
            "response looks truncated"
        )

    if errors:
        return ValidationVerdict(ok=False, errors=errors)
    return ValidationVerdict(ok=True, errors=[], text=cleaned)


def parse_table_rows(text: str) -> list[TableRow]:
    return [row for row in _iter_cells(text) if not _is_separator(row)]


def table_body_rows(text: str) -> list[TableRow]:
    """Rows to display: the table without its header.

    A single row followed by a separator is the markdown header. Rows whose
    cells are all bare header labels are dropped too.
    """
    cell_rows = list(_iter_cells(text))
    if len(cell_rows) >= 2 and _is_separator(cell_rows[1]):
        cell_rows = cell_rows[2:]

    return [
        row
        for row in cell_rows
        if not _is_separator(row) and not _is_label_row(row)
    ]


def data_rows(
    rows: list[TableRow], header_keywords: tuple[str, ...] = HEADER_KEYWORDS
) -> list[TableRow]:
    return [row for row in rows if not _is_header_row(row, header_keywords)]


def strip_completion_marker(text: str, marker: str) -> str:
    if not marker:
        return text.strip()
    return text.replace(marker, "").strip()


def _validate_table(text: str, rules: ValidationRules) -> list[str]:
    rows = parse_table_rows(text)
    if not rows:
        return ["no translation table rows found"]

    errors: list[str] = []
    body_rows = data_rows(rows, rules.header_keywords)
    if len(body_rows) < rules.min_data_rows:
        errors.append(
            f"too few data rows: {len(body_rows)} < {rules.min_data_rows}"
        )

    original_chars = sum(len(row.original) for row in body_rows)
    if original_chars < rules.min_original_chars:
        errors.append(
            "original text too short: "
            f"{original_chars} < {rules.min_original_chars} characters"
        )

    return errors


def _is_header_row(row: TableRow, header_keywords: tuple[str, ...]) -> bool:
    for cell in row.cells:
        lowered = cell.lower()
        if any(keyword in lowered for keyword in header_keywords):
            return True
    return False


def _iter_cells(text: str) -> Iterator[TableRow]:
    for line in text.splitlines():
        if "|" not in line:
            continue
        cells = tuple(cell.strip() for cell in line.split("|") if cell.strip())
        if len(cells) >= 2:
            yield TableRow(cells=cells)


def _is_separator(row: TableRow) -> bool:
    return all(_SEPARATOR_CELL_RE.match(cell) for cell in row.cells)


def _is_label_row(row: TableRow) -> bool:
    for cell in row.cells:
        label = cell.strip("*_: ").lower()
        if label not in HEADER_LABELS:
            return False
    return True
