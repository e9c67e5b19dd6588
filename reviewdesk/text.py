"""Slug helpers shared by tenant registration and location sync."""
import re
from typing import Callable


def slugify(value: str) -> str:
    """Lowercase, strip non-alphanumerics, spaces to hyphens, collapse and trim hyphens."""
    slug = value.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def unique_slug(base: str, taken: Callable[[str], bool], fallback: str = "item") -> str:
    """Append -2, -3, ... until taken(slug) is False."""
    root = slugify(base) or fallback
    slug = root
    n = 2
    while taken(slug):
        slug = f"{root}-{n}"
        n += 1
    return slug
