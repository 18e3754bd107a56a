"""Document parsing capability used by the sanitization stages.

Two implementations exist: a tree-based one backed by ``lxml.html`` and a
regex-only fallback for environments without a DOM parser. Stages receive a
parser at construction time and check :attr:`DocumentParser.available`
instead of probing the environment themselves.
"""
from __future__ import annotations

import html as html_std
import re
from abc import ABC, abstractmethod
from typing import Any

from lxml import etree
from lxml import html as lxml_html

from readlater.ingestion.errors import SanitizationDegraded

_XML_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)

# Raised by lxml for markup it cannot parse or strings it cannot store.
TREE_ERRORS = (ValueError, etree.LxmlError)


class DocumentParser(ABC):
    """Parse and serialize HTML documents and fragments."""

    available: bool = True

    @abstractmethod
    def parse(self, markup: str) -> Any:
        """Parse a whole document and return its root element."""

    @abstractmethod
    def serialize(self, tree: Any) -> str:
        """Serialize a document root back to markup."""

    @abstractmethod
    def fragment(self, markup: str) -> Any:
        """Parse a fragment into a detached container element."""

    @abstractmethod
    def serialize_fragment(self, container: Any) -> str:
        """Return the inner markup of a container built by :meth:`fragment`."""


class LxmlDocumentParser(DocumentParser):
    available = True

    def __init__(self) -> None:
        self._parser = lxml_html.HTMLParser(
            encoding="utf-8",
            remove_comments=True,
            remove_pis=True,
        )
        self._fragment_parser = lxml_html.HTMLParser(remove_comments=True, remove_pis=True)

    def parse(self, markup: str) -> Any:
        markup = _XML_DECLARATION_RE.sub("", markup, count=1)
        # Feeding bytes sidesteps lxml's refusal of str input carrying an
        # encoding declaration and keeps the decoding under our control.
        return lxml_html.document_fromstring(markup.encode("utf-8"), parser=self._parser)

    def serialize(self, tree: Any) -> str:
        return etree.tostring(tree, encoding="unicode", method="html")

    def fragment(self, markup: str) -> Any:
        if not markup or not markup.strip():
            return lxml_html.Element("div")
        return lxml_html.fragment_fromstring(markup, create_parent="div", parser=self._fragment_parser)

    def serialize_fragment(self, container: Any) -> str:
        parts = []
        if container.text:
            parts.append(html_std.escape(container.text, quote=False))
        for child in container:
            parts.append(etree.tostring(child, encoding="unicode", method="html", with_tail=True))
        return "".join(parts)


class RegexDocumentParser(DocumentParser):
    """Fallback used when no DOM parser is present.

    Callers see ``available = False`` and keep to regex-level processing;
    any attempt to build a tree reports a degraded condition.
    """

    available = False

    def parse(self, markup: str) -> Any:
        raise SanitizationDegraded("parser_unavailable", "no DOM parser configured")

    def serialize(self, tree: Any) -> str:
        raise SanitizationDegraded("parser_unavailable", "no DOM parser configured")

    def fragment(self, markup: str) -> Any:
        raise SanitizationDegraded("parser_unavailable", "no DOM parser configured")

    def serialize_fragment(self, container: Any) -> str:
        raise SanitizationDegraded("parser_unavailable", "no DOM parser configured")


def default_parser() -> DocumentParser:
    return LxmlDocumentParser()


__all__ = ["DocumentParser", "LxmlDocumentParser", "RegexDocumentParser", "TREE_ERRORS", "default_parser"]
