from __future__ import annotations

import re
from html import escape
from pathlib import Path
from typing import Sequence

from pagetranslate.pipeline.types import PageReport
from pagetranslate.pipeline.validate_output import table_body_rows
from pagetranslate.storage.run_manifest import update_run_manifest

PAGE_FILE_RE = re.compile(r"^page-(\d{4,})\.html$")

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="ru">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title} - {page_number} / {total_pages}</title>
<style>
body {{ font-family: sans-serif; margin: 0; }}
nav {{ display: flex; justify-content: space-between; padding: 8px; background: #eee; }}
table {{ width: 100%; border-collapse: collapse; }}
td, th {{ padding: 8px 5px; border: 1px solid #e0e0e0; vertical-align: top; width: 50%; }}
.error-message {{ background: #ffe0e0; color: #cc0000; font-weight: bold; text-align: center; }}
.source-info {{ font-size: 0.8em; color: #888; text-align: center; }}
</style>
</head>
<body>
{navigation}
<p class="source-info">Page {page_number} of {total_pages}. Source: {source_file}</p>
<table class="translation-table">
<tbody>
{rows}
</tbody>
</table>
{navigation}
</body>
</html>
"""

_INDEX_TEMPLATE = """<!DOCTYPE html>
<html lang="ru">
<head>
<meta charset="UTF-8">
<title>{title}</title>
</head>
<body>
<h1>{title}</h1>
<ul>
{items}
</ul>
</body>
</html>
"""


class HtmlArtifactWriter:
    """Writes ``page-NNNN.html`` per page plus ``index.html`` and ``run.json``."""

    def __init__(
        self, output_dir: Path | str, *, title: str = "Translation", run_id: str | None = None
    ) -> None:
        self.output_dir = Path(output_dir)
        self.title = title
        self.run_id = run_id

    def page_path(self, page_number: int) -> Path:
        return self.output_dir / page_file_name(page_number)

    @property
    def index_path(self) -> Path:
        return self.output_dir / "index.html"

    def render_page(self, report: PageReport) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.page_path(report.job.page_number)
        path.write_text(self.build_page_html(report), encoding="utf-8")
        return path

    def finalize(self, reports: Sequence[PageReport]) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        update_run_manifest(
            output_dir=self.output_dir, reports=reports, run_id=self.run_id
        )
        self.index_path.write_text(self.build_index_html(), encoding="utf-8")
        return self.index_path

    def build_page_html(self, report: PageReport) -> str:
        outcome = report.outcome
        if outcome.is_accepted:
            rows = _table_rows_html(outcome.text or "")
        else:
            rows = _failure_row_html(
                reason=outcome.reason or "unknown error",
                source_file=report.job.file_name,
            )

        return _PAGE_TEMPLATE.format(
            title=escape(self.title),
            page_number=report.job.page_number,
            total_pages=report.total_pages,
            source_file=escape(report.job.file_name),
            navigation=_navigation_html(report.job.page_number, report.total_pages),
            rows=rows,
        )

    def build_index_html(self) -> str:
        items = [
            f'<li><a href="{name}">Page {number}</a></li>'
            for number, name in self._rendered_pages()
        ]
        return _INDEX_TEMPLATE.format(title=escape(self.title), items="\n".join(items))

    def _rendered_pages(self) -> list[tuple[int, str]]:
        pages: list[tuple[int, str]] = []
        for path in self.output_dir.glob("page-*.html"):
            match = PAGE_FILE_RE.match(path.name)
            if match is not None:
                pages.append((int(match.group(1)), path.name))
        return sorted(pages)


def page_file_name(page_number: int) -> str:
    return f"page-{page_number:04d}.html"


def _table_rows_html(text: str) -> str:
    lines = ["<tr><th>Original</th><th>Translation</th></tr>"]
    for row in table_body_rows(text):
        lines.append(
            f"<tr><td>{escape(row.original)}</td><td>{escape(row.translation)}</td></tr>"
        )
    return "\n".join(lines)


def _failure_row_html(*, reason: str, source_file: str) -> str:
    return (
        '<tr><td colspan="2" class="error-message">'
        "PAGE NOT TRANSLATED<br><br>"
        f"Reason: {escape(reason)}<br><br>"
        f"Source file: {escape(source_file)}"
        "</td></tr>"
    )


def _navigation_html(page_number: int, total_pages: int) -> str:
    links: list[str] = []
    if page_number > 1:
        links.append(f'<a href="{page_file_name(page_number - 1)}">&larr; Previous</a>')
    else:
        links.append("<span></span>")
    links.append('<a href="index.html">Index</a>')
    if page_number < total_pages:
        links.append(f'<a href="{page_file_name(page_number + 1)}">Next &rarr;</a>')
    else:
        links.append("<span></span>")
    return "<nav>" + "".join(links) + "</nav>"
