"""Utility helpers for the ReelMates service."""

from __future__ import annotations


def normalize_title(value: str | None) -> str:
    """Return the comparison key used to detect duplicate titles."""

    if not value:
        return ""
    return value.strip().casefold()


def build_image_url(path: str | None, base_url: str, placeholder: str) -> str:
    """Resolve a poster reference to a URL, falling back to the placeholder."""

    if not path:
        return placeholder
    if path.startswith(("http://", "https://", "data:")):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
