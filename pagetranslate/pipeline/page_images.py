from __future__ import annotations

import re
from pathlib import Path

from pagetranslate.pipeline.types import PageJob, PageSelection
from pagetranslate.utils.error_taxonomy import (
    EmptyPageSelectionError,
    InvalidPageRangeError,
    SourceDirectoryNotFoundError,
)

PAGE_IMAGE_RE = re.compile(
    r"^(?P<prefix>.+)-(?P<number>\d+)\.(?P<ext>png|jpe?g|gif|bmp|webp)$",
    re.IGNORECASE,
)

MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/png"


def resolve_mime_type(path: Path | str) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def parse_page_number(file_name: str) -> int | None:
    match = PAGE_IMAGE_RE.match(file_name)
    if match is None:
        return None
    return int(match.group("number"))


def validate_page_range(start_page: int, end_page: int) -> None:
    if start_page < 1:
        raise InvalidPageRangeError(f"start page must be >= 1, got {start_page}")
    if end_page < start_page:
        raise InvalidPageRangeError(
            f"end page {end_page} is before start page {start_page}"
        )


def select_pages(
    images_dir: Path | str, start_page: int, end_page: int
) -> PageSelection:
    """Enumerate page images in ``[start_page, end_page]`` sorted by page.

    The document page count is the largest page number found in the whole
    directory, not only within the selected range.
    """
    validate_page_range(start_page, end_page)

    directory = Path(images_dir)
    if not directory.is_dir():
        raise SourceDirectoryNotFoundError(f"Images directory not found: {directory}")

    jobs: list[PageJob] = []
    total_pages = 0
    for path in directory.iterdir():
        if not path.is_file():
            continue
        page_number = parse_page_number(path.name)
        if page_number is None:
            continue
        total_pages = max(total_pages, page_number)
        if start_page <= page_number <= end_page:
            jobs.append(
                PageJob(
                    image_path=path,
                    page_number=page_number,
                    mime_type=resolve_mime_type(path),
                )
            )

    if not jobs:
        raise EmptyPageSelectionError(
            f"No page images in range {start_page}-{end_page} under {directory}"
        )

    jobs.sort(key=lambda job: (job.page_number, job.file_name))
    return PageSelection(jobs=jobs, total_pages=total_pages)
