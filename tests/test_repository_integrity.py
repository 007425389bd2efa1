"""Repository-level integrity checks."""

from __future__ import annotations

import re
from pathlib import Path

from app.categories import CATEGORIES, CATEGORY_MAP, DEFAULT_CATEGORY_IDS

CONFLICT_PATTERN = re.compile(r"^(<<<<<<< |>>>>>>> )", re.MULTILINE)
CHECKED_SUFFIXES = {".py", ".toml", ".txt"}
IGNORED_PARTS = {".git", "__pycache__", ".mypy_cache", ".pytest_cache", ".venv"}


def test_sources_have_no_merge_conflict_markers() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    offending = [
        path.relative_to(repo_root)
        for path in repo_root.rglob("*")
        if path.is_file()
        and path.suffix in CHECKED_SUFFIXES
        and not any(part in IGNORED_PARTS for part in path.parts)
        and CONFLICT_PATTERN.search(path.read_text(encoding="utf-8", errors="ignore"))
    ]

    assert not offending, f"Conflict markers left in: {', '.join(map(str, offending))}"


def test_category_table_is_consistent() -> None:
    """Every default row must map to exactly one named category."""

    assert len(CATEGORY_MAP) == len(CATEGORIES)
    assert all(CATEGORY_MAP[category_id].name for category_id in DEFAULT_CATEGORY_IDS)
    assert len({category.name.casefold() for category in CATEGORIES}) == len(CATEGORIES)
