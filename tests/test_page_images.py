from __future__ import annotations

from pathlib import Path

import pytest

from pagetranslate.pipeline.page_images import (
    parse_page_number,
    resolve_mime_type,
    select_pages,
    validate_page_range,
)
from pagetranslate.utils.error_taxonomy import (
    EmptyPageSelectionError,
    InvalidPageRangeError,
    SourceDirectoryNotFoundError,
)
from tests.fakes import make_page_images


@pytest.mark.parametrize(
    ("file_name", "expected"),
    [
        ("book-001.png", 1),
        ("scan-page-42.JPG", 42),
        ("a-7.jpeg", 7),
        ("x-0010.webp", 10),
        ("doc-3.tiff", None),
        ("cover.png", None),
        ("page-.png", None),
        ("page-12.png.bak", None),
    ],
)
def test_parse_page_number(file_name: str, expected: int | None) -> None:
    assert parse_page_number(file_name) == expected


def test_resolve_mime_type_defaults_to_png() -> None:
    assert resolve_mime_type("page-1.JPG") == "image/jpeg"
    assert resolve_mime_type(Path("page-1.webp")) == "image/webp"
    assert resolve_mime_type("page-1.unknown") == "image/png"


def test_validate_page_range() -> None:
    validate_page_range(1, 1)
    with pytest.raises(InvalidPageRangeError):
        validate_page_range(0, 3)
    with pytest.raises(InvalidPageRangeError):
        validate_page_range(5, 2)


def test_select_pages_sorts_numerically_and_filters(tmp_path: Path) -> None:
    images_dir = make_page_images(tmp_path, [10, 2, 9, 1])
    (tmp_path / "page-003.gif").write_bytes(b"gif")
    (tmp_path / "readme.md").write_text("x", encoding="utf-8")
    (tmp_path / "sub-4.png").mkdir()

    selection = select_pages(images_dir, 2, 9)

    assert [job.page_number for job in selection.jobs] == [2, 3, 9]
    assert selection.jobs[1].mime_type == "image/gif"
    assert selection.total_pages == 10


def test_select_pages_errors(tmp_path: Path) -> None:
    with pytest.raises(SourceDirectoryNotFoundError):
        select_pages(tmp_path / "nope", 1, 2)

    make_page_images(tmp_path, [1, 2])
    with pytest.raises(EmptyPageSelectionError):
        select_pages(tmp_path, 3, 4)
