from __future__ import annotations

import re

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")


def strip_html(html: str) -> str:
    """
    Return the visible text of editor HTML with whitespace collapsed.
    """
    if not html:
        return ""
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def word_count(html: str) -> int:
    text = strip_html(html)
    return len(text.split(" ")) if text else 0
