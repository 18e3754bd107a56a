"""Pre-sanitization of raw article HTML before any extraction runs.

The stage strips executable and interactive markup, rewrites resource and
link URLs to absolute form against the page URL, and repairs list structure.
It never fails the request: every problem degrades to a less-rewritten
document and a warning.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from readlater.ingestion.errors import SanitizationDegraded
from readlater.ingestion.parsers import DocumentParser, default_parser
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

# An unclosed script, style or comment runs to the end of the document.
_STRIP_PATTERNS = (
    re.compile(r"<script\b[^>]*>.*?(?:</script\s*>|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style\b[^>]*>.*?(?:</style\s*>|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"<!--.*?(?:-->|\Z)", re.DOTALL),
    re.compile(r"<form\b[^>]*>.*?</form\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<template\b[^>]*>.*?</template\s*>", re.IGNORECASE | re.DOTALL),
)

DROPPED_TAGS = ("script", "style", "form", "noscript", "template")
LIST_TAGS = ("ul", "ol")
MEDIA_TAGS = ("video", "audio", "source", "track")

IFRAME_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"

SAFE_LINK_SCHEMES = {"http", "https", "mailto", "tel", "ftp"}
SAFE_RESOURCE_SCHEMES = {"http", "https"}


def strip_executable_markup(html: str) -> str:
    """Regex-level removal of scripts, styles, comments, forms and templates."""

    for pattern in _STRIP_PATTERNS:
        html = pattern.sub("", html)
    return html


def _report_degraded(exc: SanitizationDegraded, url: str) -> None:
    metrics.record_degraded("presanitize", exc.reason)
    logger.warning(
        "Pre-sanitization degraded for %s: %s",
        url,
        exc,
        extra={"event": "sanitize.degraded", "stage": "presanitize", "reason": exc.reason, "url": url},
    )


def _is_element(node: Any) -> bool:
    return isinstance(node.tag, str)


def resolve_url(value: str, base_url: str, *, allow_data: bool = False, link: bool = False) -> str:
    """Return ``value`` as an absolute URL, a fragment or a ``mailto:`` URI.

    Raises :class:`SanitizationDegraded` when the value cannot be resolved
    to something safe to emit.
    """

    candidate = value.strip()
    lowered = candidate.lower()
    if lowered.startswith(("http:", "https:")):
        return candidate
    if link and (candidate.startswith("#") or lowered.startswith("mailto:")):
        return candidate
    if allow_data and lowered.startswith("data:image/"):
        return candidate
    try:
        resolved = urljoin(base_url, candidate)
        scheme = urlparse(resolved).scheme.lower()
    except ValueError as exc:
        raise SanitizationDegraded("malformed_url", candidate[:200]) from exc
    allowed = SAFE_LINK_SCHEMES if link else SAFE_RESOURCE_SCHEMES
    if scheme not in allowed:
        raise SanitizationDegraded("unsafe_url", candidate[:200])
    return resolved


def _append_style(element: Any, declaration: str) -> None:
    style = (element.get("style") or "").strip()
    if declaration in style:
        return
    if style and not style.endswith(";"):
        style += ";"
    element.set("style", f"{style} {declaration};".strip())


class Presanitizer:
    """Clean raw HTML and make every reference absolute."""

    def __init__(self, parser: Optional[DocumentParser] = None) -> None:
        self._parser = parser or default_parser()

    @property
    def parser(self) -> DocumentParser:
        return self._parser

    def presanitize(self, html: str, base_url: str) -> str:
        stripped = strip_executable_markup(html or "")

        parsed_base = None
        try:
            parsed_base = urlparse(base_url)
        except (TypeError, ValueError):
            pass
        if parsed_base is None or parsed_base.scheme.lower() not in {"http", "https"} or not parsed_base.netloc:
            _report_degraded(SanitizationDegraded("invalid_base_url", str(base_url)[:200]), str(base_url))
            return stripped

        if not self._parser.available:
            _report_degraded(SanitizationDegraded("parser_unavailable"), base_url)
            return stripped

        try:
            tree = self._parser.parse(stripped)
            self._drop_executable(tree)
            self._rewrite_images(tree, base_url)
            self._rewrite_links(tree, base_url)
            self._rewrite_iframes(tree, base_url)
            self._rewrite_media(tree, base_url)
            repair_lists(tree)
            return self._parser.serialize(tree)
        except SanitizationDegraded as exc:
            _report_degraded(exc, base_url)
            return stripped
        except Exception:
            logger.exception(
                "Error processing HTML for %s, using unrewritten markup",
                base_url,
                extra={"event": "sanitize.degraded", "stage": "presanitize", "reason": "parse_error", "url": base_url},
            )
            metrics.record_degraded("presanitize", "parse_error")
            return stripped

    def _drop_executable(self, tree: Any) -> None:
        for element in list(tree.iter(*DROPPED_TAGS)):
            if element.getparent() is not None:
                element.drop_tree()
        for element in tree.iter():
            if not _is_element(element):
                continue
            for name in list(element.attrib):
                if name.lower().startswith("on"):
                    del element.attrib[name]

    def _resolve_attribute(self, element: Any, attribute: str, base_url: str, **kwargs: bool) -> Optional[str]:
        value = element.get(attribute)
        if value is None:
            return None
        try:
            resolved = resolve_url(value, base_url, **kwargs)
        except SanitizationDegraded as exc:
            _report_degraded(exc, base_url)
            del element.attrib[attribute]
            return None
        if resolved != value:
            element.set(attribute, resolved)
        return resolved

    def _rewrite_images(self, tree: Any, base_url: str) -> None:
        for img in tree.iter("img"):
            if self._resolve_attribute(img, "src", base_url, allow_data=True) is None:
                continue
            img.set("loading", "lazy")
            _append_style(img, "max-width: 100%")

    def _rewrite_links(self, tree: Any, base_url: str) -> None:
        for link in tree.iter("a"):
            href = self._resolve_attribute(link, "href", base_url, link=True)
            if href and href.lower().startswith("http"):
                link.set("target", "_blank")
                link.set("rel", "noopener noreferrer")

    def _rewrite_iframes(self, tree: Any, base_url: str) -> None:
        for iframe in tree.iter("iframe"):
            src = self._resolve_attribute(iframe, "src", base_url)
            if src is None:
                continue
            if src.lower().startswith("http:") and is_youtube_url(src):
                iframe.set("src", "https:" + src[len("http:"):])
            iframe.set("allowfullscreen", "true")
            iframe.set("loading", "lazy")
            iframe.set("allow", IFRAME_ALLOW)

    def _rewrite_media(self, tree: Any, base_url: str) -> None:
        for element in tree.iter(*MEDIA_TAGS):
            self._resolve_attribute(element, "src", base_url)
            if element.tag == "video":
                self._resolve_attribute(element, "poster", base_url)


def is_youtube_url(src: str) -> bool:
    try:
        host = (urlparse(src).hostname or "").lower()
    except ValueError:
        return False
    return host == "youtube.com" or host.endswith(".youtube.com")


def _is_empty_list(element: Any) -> bool:
    if (element.text or "").strip():
        return False
    for child in element:
        if _is_element(child) or (child.tail or "").strip():
            return False
    return True


def _reparent_nested_lists(tree: Any) -> None:
    for nested in list(tree.iter(*LIST_TAGS)):
        parent = nested.getparent()
        if parent is None or parent.tag not in LIST_TAGS:
            continue
        previous = nested.getprevious()
        if previous is None or previous.tag != "li":
            continue
        tail = nested.tail
        nested.tail = None
        previous.append(nested)
        if tail:
            previous.tail = (previous.tail or "") + tail


def _remove_empty_lists(tree: Any) -> None:
    while True:
        empty = [el for el in tree.iter(*LIST_TAGS) if _is_empty_list(el) and el.getparent() is not None]
        if not empty:
            return
        for element in empty:
            element.drop_tree()


def _wrap_stray_children(tree: Any) -> None:
    for lst in list(tree.iter(*LIST_TAGS)):
        for child in list(lst):
            if not _is_element(child) or child.tag == "li":
                continue
            index = lst.index(child)
            tail = child.tail
            child.tail = None
            item = lst.makeelement("li", {})
            lst.insert(index, item)
            item.append(child)
            item.tail = tail

        if (lst.text or "").strip():
            item = lst.makeelement("li", {})
            item.text = lst.text
            lst.text = None
            lst.insert(0, item)

        for child in list(lst):
            if (child.tail or "").strip():
                item = lst.makeelement("li", {})
                item.text = child.tail
                child.tail = None
                lst.insert(lst.index(child) + 1, item)


def repair_lists(tree: Any) -> None:
    """Fix list markup in place.

    Order matters: nested lists are moved into their preceding item first,
    then empty lists are removed, then stray children are wrapped in ``<li>``.
    """

    _reparent_nested_lists(tree)
    _remove_empty_lists(tree)
    _wrap_stray_children(tree)


def presanitize(html: str, base_url: str, parser: Optional[DocumentParser] = None) -> str:
    return Presanitizer(parser).presanitize(html, base_url)


__all__ = [
    "IFRAME_ALLOW",
    "Presanitizer",
    "is_youtube_url",
    "presanitize",
    "repair_lists",
    "resolve_url",
    "strip_executable_markup",
]
