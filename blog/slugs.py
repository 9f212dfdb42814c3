"""
Slug generation for blog posts.

A slug is built from the post title in two steps:

1. ``normalize_title`` turns the title into a URL-safe base candidate
   (lower-case ASCII word characters separated by single hyphens), falling
   back to ``"untitled"`` when nothing usable is left.
2. ``unique_slug`` appends ``-1``, ``-2``, ... to the base until the
   existence check reports the candidate as free.

Nothing here touches the database; the caller passes the existence check in.
The check and the later save are not atomic, so two writers can still end up
with the same candidate. The unique constraint on ``Post.slug`` catches that.
"""

import re
from typing import Callable

FALLBACK_SLUG = 'untitled'

_DISALLOWED = re.compile(r'[^\w\s-]', re.ASCII)
_SEPARATORS = re.compile(r'[\s_-]+', re.ASCII)


def normalize_title(title: str) -> str:
    """Return the base slug candidate for a title."""
    candidate = title.lower().strip()
    candidate = _DISALLOWED.sub('', candidate)
    candidate = _SEPARATORS.sub('-', candidate)
    candidate = candidate.strip('-')
    return candidate or FALLBACK_SLUG


def unique_slug(title: str, taken: Callable[[str], bool]) -> str:
    """
    Return the first slug for ``title`` that ``taken`` reports as free.

    ``taken(candidate)`` must answer whether some *other* post already uses
    ``candidate``. The post being written has to be excluded by the caller,
    otherwise re-saving a post would bump its own slug.
    """
    base = normalize_title(title)
    slug = base
    counter = 1
    while taken(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug
