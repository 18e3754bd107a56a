"""HTML entity decoding for metadata candidates and article text."""
from __future__ import annotations

import html
import re

# Characters lxml refuses in text nodes (C0 controls other than tab, LF, CR).
_XML_INCOMPATIBLE_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f]")


def decode_html_entities(text: str) -> str:
    """Decode named and numeric character references in a single pass.

    ``&amp;lt;`` decodes to ``&lt;``, not ``<``. Invalid code points become
    U+FFFD or are dropped, and control characters never survive decoding.
    """

    if not text:
        return ""
    if "&" in text:
        text = html.unescape(text)
    return _XML_INCOMPATIBLE_RE.sub("", text)


__all__ = ["decode_html_entities"]
