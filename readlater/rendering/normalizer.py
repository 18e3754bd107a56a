"""Post-sanitization and presentation normalization of extracted articles.

``normalize`` is a pure function of the extracted fragment and the reader's
display settings: the fragment is cleaned against an allow-list with bleach,
then every element kind gets deterministic inline styling through lxml.
"""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Any, Dict, Iterable, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer

from readlater.config.display import DEFAULT_DISPLAY_SETTINGS, DisplaySettings
from readlater.ingestion.entities import decode_html_entities
from readlater.ingestion.parsers import TREE_ERRORS, DocumentParser, default_parser
from readlater.ingestion.presanitizer import IFRAME_ALLOW, is_youtube_url, strip_executable_markup
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset(
    {
        "a", "abbr", "acronym", "address", "article", "aside", "b", "bdi", "bdo",
        "blockquote", "br", "caption", "cite", "code", "col", "colgroup", "dd",
        "del", "details", "dfn", "div", "dl", "dt", "em", "figcaption", "figure",
        "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "iframe", "img", "ins",
        "kbd", "li", "main", "mark", "ol", "p", "picture", "pre", "q", "rp", "rt",
        "ruby", "s", "samp", "section", "small", "source", "span", "strong", "sub",
        "summary", "sup", "table", "tbody", "td", "tfoot", "th", "thead", "time",
        "tr", "u", "ul", "var", "video", "wbr",
    }
)

# Attributes beyond bleach's defaults that embeds need.
EMBED_ATTRIBUTES = ("allowfullscreen", "frameborder", "target", "src", "width", "height", "allow", "loading")

ALLOWED_ATTRIBUTES: Dict[str, tuple] = {
    "*": ("id", "class", "style", "title", "lang", "dir"),
    "a": ("href", "target", "rel"),
    "img": ("src", "alt", "width", "height", "loading", "type", "data-fallback"),
    "iframe": EMBED_ATTRIBUTES,
    "video": ("src", "controls", "preload", "poster", "width", "height", "loop", "muted", "playsinline"),
    "source": ("src", "type"),
    "td": ("colspan", "rowspan", "headers", "scope"),
    "th": ("colspan", "rowspan", "headers", "scope"),
    "col": ("span",),
    "colgroup": ("span",),
    "ol": ("start", "reversed", "type"),
    "li": ("value",),
    "time": ("datetime",),
}

ALLOWED_PROTOCOLS = ("http", "https", "mailto", "tel", "data")

ALLOWED_CSS_PROPERTIES = frozenset(
    {
        "background-color", "border", "border-bottom", "border-collapse", "border-left",
        "border-radius", "box-shadow", "color", "cursor", "display", "font-family",
        "font-size", "font-style", "font-weight", "height", "left", "line-height",
        "list-style-type", "margin", "margin-bottom", "margin-left", "margin-right",
        "margin-top", "max-width", "overflow", "overflow-x", "padding", "padding-bottom",
        "padding-left", "padding-right", "position", "text-align", "text-decoration",
        "text-transform", "top", "transition", "vertical-align", "white-space", "width",
        "word-break",
    }
)

_SVG_RE = re.compile(r"<svg\b.*?(?:</svg\s*>|\Z)", re.IGNORECASE | re.DOTALL)
_SLUG_STRIP_RE = re.compile(r"[^\w\s]")
_SLUG_SPACE_RE = re.compile(r"\s+")

URL_ATTRIBUTES = ("href", "src", "poster")

HEADING_SCALE = {"h1": 1.8, "h2": 1.5, "h3": 1.3, "h4": 1.1, "h5": 1.0, "h6": 0.9}
UL_MARKERS = ("disc", "circle", "square")
OL_MARKERS = ("decimal", "lower-alpha", "lower-roman")

BLOCK_CHILD_TAGS = ("p", "div", "table", "blockquote", "pre")
CAPTION_CLASSES = ("caption", "image-caption")
VIDEO_CAPTION_CLASSES = ("caption", "video-caption")

SHADOW = "0 1px 3px rgba(0, 0, 0, 0.05)"
TEXT_COLOR = "#424750"
MUTED_COLOR = "#5a6270"
RULE_COLOR = "#e1e5ea"
CELL_BORDER = "1px solid #edf0f2"
SHADE = "#f8f9fa"


def _is_safe_url(tag: str, name: str, value: str) -> bool:
    candidate = value.strip().lower()
    if candidate.startswith(("http:", "https:")):
        return True
    if name == "href":
        return candidate.startswith(("#", "mailto:", "tel:"))
    if tag == "img" and name == "src":
        return candidate.startswith("data:image/")
    return False


def _allow_attribute(tag: str, name: str, value: str) -> bool:
    if name not in ALLOWED_ATTRIBUTES.get(tag, ()) and name not in ALLOWED_ATTRIBUTES["*"]:
        return False
    if name in URL_ATTRIBUTES:
        return _is_safe_url(tag, name, value)
    return True


def sanitize_fragment(content_html: str) -> str:
    """Allow-list sanitization; anything not permitted is dropped."""

    pre = strip_executable_markup(content_html)
    pre = _SVG_RE.sub("", pre)
    return bleach.clean(
        pre,
        tags=ALLOWED_TAGS,
        attributes=_allow_attribute,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
        css_sanitizer=CSSSanitizer(allowed_css_properties=ALLOWED_CSS_PROPERTIES),
    )


def _parse_style(style: Optional[str]) -> "OrderedDict[str, str]":
    declarations: "OrderedDict[str, str]" = OrderedDict()
    for chunk in (style or "").split(";"):
        name, sep, value = chunk.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = value.strip()
        if name and value:
            declarations[name] = value
    return declarations


def _write_style(element: Any, declarations: "OrderedDict[str, str]") -> None:
    if declarations:
        element.set("style", "; ".join(f"{name}: {value}" for name, value in declarations.items()))
    elif "style" in element.attrib:
        del element.attrib["style"]


def _apply_styles(element: Any, styles: Dict[str, Optional[str]]) -> None:
    """Merge ``styles`` into the inline style, keeping first-seen order.

    A ``None`` value removes the property.
    """

    declarations = _parse_style(element.get("style"))
    for name, value in styles.items():
        if value is None:
            declarations.pop(name, None)
        else:
            declarations[name] = value
    _write_style(element, declarations)


def _hide(element: Any) -> None:
    _apply_styles(element, {"display": "none"})


def _px(value: float) -> str:
    return f"{round(value, 2):g}px"


def _number(value: float) -> str:
    return f"{value:g}"


def _classes(element: Any) -> set:
    return set((element.get("class") or "").split())


def _is_element(node: Any) -> bool:
    return isinstance(node.tag, str)


def _is_caption(element: Optional[Any], classes: Iterable[str]) -> bool:
    if element is None or not _is_element(element):
        return False
    return element.tag == "figcaption" or bool(_classes(element) & set(classes))


def _wrap(element: Any, tag: str, attrib: Dict[str, str]) -> Any:
    wrapper = element.makeelement(tag, attrib)
    tail = element.tail
    element.tail = None
    element.addprevious(wrapper)
    wrapper.append(element)
    wrapper.tail = tail
    return wrapper


def _has_ancestor(element: Any, tag: str) -> bool:
    return any(ancestor.tag == tag for ancestor in element.iterancestors())


def _closest(element: Any, tag: str) -> Optional[Any]:
    for ancestor in element.iterancestors():
        if ancestor.tag == tag:
            return ancestor
    return None


def _is_svg_image(img: Any) -> bool:
    src = (img.get("src") or "").strip().lower()
    kind = (img.get("type") or "").lower()
    return src.endswith(".svg") or src.startswith("data:image/svg") or "svg" in kind


def is_video_embed(src: str) -> bool:
    lowered = src.lower()
    return (
        "youtube.com" in lowered
        or "youtu.be" in lowered
        or "vimeo.com" in lowered
        or "video" in lowered
    )


def slugify(text: str) -> str:
    slug = _SLUG_STRIP_RE.sub("", text.lower().strip())
    return _SLUG_SPACE_RE.sub("-", slug)


class ArticleNormalizer:
    """Sanitize an extracted fragment and apply reader typography."""

    def __init__(self, parser: Optional[DocumentParser] = None) -> None:
        self._parser = parser or default_parser()

    def normalize(self, content_html: str, settings: DisplaySettings = DEFAULT_DISPLAY_SETTINGS) -> str:
        if not content_html or not content_html.strip():
            return ""

        cleaned = sanitize_fragment(content_html)
        if not self._parser.available:
            metrics.record_degraded("normalize", "parser_unavailable")
            logger.warning(
                "No DOM parser available, serving sanitized markup without styling",
                extra={"event": "sanitize.degraded", "stage": "normalize", "reason": "parser_unavailable"},
            )
            return cleaned

        try:
            return self._style(cleaned, settings)
        except TREE_ERRORS as exc:
            metrics.record_degraded("normalize", "tree_error")
            logger.warning(
                "Styling failed, serving sanitized markup without styling: %s",
                exc,
                extra={"event": "sanitize.degraded", "stage": "normalize", "reason": "tree_error"},
            )
            return cleaned

    def _style(self, cleaned: str, settings: DisplaySettings) -> str:
        root = self._parser.fragment(cleaned)

        self._decode_text(root)
        self._remove_svg(root)
        self._canonicalize_styles(root)
        self._process_iframes(root, settings)
        self._process_videos(root, settings)
        self._process_figures(root, settings)
        self._process_images(root, settings)
        if not settings.show_images:
            self._hide_captions(root, settings)
        self._process_code(root, settings)
        self._process_tables(root, settings)
        self._process_links(root)
        self._process_lists(root, settings)
        self._process_list_items(root)
        self._process_blockquotes(root)
        self._process_headings(root, settings)
        self._process_paragraphs(root, settings)

        return self._parser.serialize_fragment(root)

    def _decode_text(self, root: Any) -> None:
        for element in root.iter():
            if not _is_element(element):
                continue
            if element.text:
                element.text = decode_html_entities(element.text)
            if element.tail and element is not root:
                element.tail = decode_html_entities(element.tail)

    def _remove_svg(self, root: Any) -> None:
        for svg in list(root.iter("svg")):
            svg.drop_tree()

    def _canonicalize_styles(self, root: Any) -> None:
        for element in root.iter():
            if _is_element(element) and "style" in element.attrib:
                _write_style(element, _parse_style(element.get("style")))

    def _process_iframes(self, root: Any, settings: DisplaySettings) -> None:
        for iframe in list(root.iter("iframe")):
            src = iframe.get("src") or ""
            if not is_video_embed(src):
                continue

            parent = iframe.getparent()
            if parent is not None and parent.tag == "div" and "video-container" in _classes(parent):
                wrapper = parent
            else:
                wrapper = _wrap(iframe, "div", {"class": "video-container"})

            _apply_styles(
                wrapper,
                {
                    "position": "relative",
                    "padding-bottom": "56.25%",
                    "height": "0",
                    "overflow": "hidden",
                    "max-width": "100%",
                    "margin-top": "1.5rem",
                    "margin-bottom": "1.5rem",
                    "border-radius": "4px",
                    "box-shadow": SHADOW,
                    "display": None if settings.show_videos else "none",
                },
            )
            _apply_styles(
                iframe,
                {
                    "position": "absolute",
                    "top": "0",
                    "left": "0",
                    "width": "100%",
                    "height": "100%",
                    "border": "none",
                },
            )
            iframe.set("allowfullscreen", "true")
            iframe.set("loading", "lazy")
            iframe.set("allow", IFRAME_ALLOW)
            if src.lower().startswith("http:") and is_youtube_url(src):
                iframe.set("src", "https:" + src[len("http:"):])

    def _process_videos(self, root: Any, settings: DisplaySettings) -> None:
        for video in list(root.iter("video")):
            if not settings.show_videos:
                _hide(video)
                following = video.getnext()
                if _is_caption(following, VIDEO_CAPTION_CLASSES):
                    _hide(following)
                continue
            _apply_styles(
                video,
                {
                    "display": "block",
                    "max-width": "100%",
                    "height": "auto",
                    "margin": "1.5rem auto",
                    "box-shadow": SHADOW,
                    "border-radius": "4px",
                },
            )
            video.set("controls", "controls")
            video.set("preload", "metadata")

    def _process_figures(self, root: Any, settings: DisplaySettings) -> None:
        for figure in list(root.iter("figure")):
            if figure.getparent() is None:
                continue
            img = next(figure.iter("img"), None)
            caption = next(figure.iter("figcaption"), None)
            has_media = next(figure.iter("video", "iframe"), None) is not None

            _apply_styles(figure, {"margin": "1.5rem 0", "text-align": "center"})

            if has_media and not settings.show_videos:
                _hide(figure)
                continue

            if img is not None:
                if _is_svg_image(img):
                    figure.drop_tree()
                elif not settings.show_images:
                    _hide(figure)
                elif caption is not None:
                    _apply_styles(
                        caption,
                        {
                            "margin-top": "0.5rem",
                            "font-size": _px(settings.font_size - 2),
                            "color": "#666",
                            "font-style": "italic",
                            "text-align": "center",
                        },
                    )
            elif caption is not None and not settings.show_images and not has_media:
                _hide(figure)

    def _process_images(self, root: Any, settings: DisplaySettings) -> None:
        for img in list(root.iter("img")):
            if _is_svg_image(img):
                img.drop_tree()
                continue

            if not settings.show_images:
                _hide(img)
                following = img.getnext()
                if _is_caption(following, CAPTION_CLASSES):
                    _hide(following)
                parent = img.getparent()
                if parent is not None:
                    for candidate in parent.iterdescendants():
                        if _is_caption(candidate, CAPTION_CLASSES):
                            _hide(candidate)
                            break
                continue

            _apply_styles(
                img,
                {
                    "display": "block",
                    "max-width": "100%",
                    "height": "auto",
                    "margin": "1.5rem auto",
                    "box-shadow": SHADOW,
                    "border-radius": "4px",
                },
            )
            img.set("loading", "lazy")
            # The renderer hides images carrying this marker when they fail to load.
            img.set("data-fallback", "hide")

    def _hide_captions(self, root: Any, settings: DisplaySettings) -> None:
        for caption in list(root.iter()):
            if not _is_caption(caption, CAPTION_CLASSES):
                continue
            figure = _closest(caption, "figure")
            has_media = figure is not None and next(figure.iter("video", "iframe"), None) is not None
            if not has_media or not settings.show_videos:
                _hide(caption)

    def _process_code(self, root: Any, settings: DisplaySettings) -> None:
        for pre in root.iter("pre"):
            _apply_styles(
                pre,
                {
                    "background-color": SHADE,
                    "padding": "1rem",
                    "overflow-x": "auto",
                    "margin-bottom": "1.5rem",
                    "font-size": _px(settings.font_size - 2),
                    "font-family": "monospace",
                    "border": CELL_BORDER,
                    "border-radius": "4px",
                    "white-space": "pre-wrap",
                    "word-break": "break-word",
                },
            )
        for code in root.iter("code"):
            if _has_ancestor(code, "pre"):
                continue
            _apply_styles(
                code,
                {
                    "font-family": "monospace",
                    "font-size": "0.875em",
                    "background-color": SHADE,
                    "padding": "0.2em 0.4em",
                    "color": MUTED_COLOR,
                    "border-radius": "3px",
                },
            )

    def _process_tables(self, root: Any, settings: DisplaySettings) -> None:
        for table in list(root.iter("table")):
            parent = table.getparent()
            if parent is not None and parent.tag == "div" and "table-wrapper" in _classes(parent):
                wrapper = parent
            else:
                wrapper = _wrap(table, "div", {"class": "table-wrapper"})
            _apply_styles(wrapper, {"overflow-x": "auto", "margin-bottom": "1.5rem"})

            _apply_styles(
                table,
                {
                    "width": "100%",
                    "border-collapse": "collapse",
                    "font-size": _px(settings.font_size - 1),
                },
            )
            for cell in table.iter("th", "td"):
                _apply_styles(
                    cell,
                    {
                        "border": CELL_BORDER,
                        "padding": "0.5rem",
                        "text-align": "left",
                        "vertical-align": "top",
                    },
                )
                if cell.tag == "th":
                    _apply_styles(cell, {"background-color": SHADE, "font-weight": "bold"})

    def _process_links(self, root: Any) -> None:
        for link in root.iter("a"):
            _apply_styles(
                link,
                {
                    "color": MUTED_COLOR,
                    "text-decoration": "none",
                    "border-bottom": f"1px solid {RULE_COLOR}",
                    "transition": "all 0.2s",
                },
            )
            if (link.get("href") or "").lower().startswith("http"):
                link.set("target", "_blank")
                link.set("rel", "noopener noreferrer")

    def _process_lists(self, root: Any, settings: DisplaySettings) -> None:
        for lst in root.iter("ul", "ol"):
            depth = sum(1 for ancestor in lst.iterancestors() if ancestor.tag in ("ul", "ol"))
            markers = UL_MARKERS if lst.tag == "ul" else OL_MARKERS
            _apply_styles(
                lst,
                {
                    "padding-left": "1.5rem",
                    "margin-bottom": "1.25rem",
                    "color": TEXT_COLOR,
                    "font-size": _px(settings.font_size),
                    "line-height": _number(settings.line_height),
                    "list-style-type": markers[depth % len(markers)],
                },
            )
            if depth:
                _apply_styles(lst, {"margin-top": "0.5rem", "margin-bottom": "0.5rem"})

    def _process_list_items(self, root: Any) -> None:
        for item in root.iter("li"):
            _apply_styles(
                item,
                {
                    "margin-top": "0.5rem",
                    "margin-bottom": "0.5rem",
                    "padding-right": "0.5rem",
                    "position": "relative",
                    "display": "list-item",
                },
            )
            # Hidden rather than removed so id-based anchors keep working.
            if not (item.text or "").strip() and len(item) == 0:
                _hide(item)

            blocks = [el for el in item.iterdescendants(*BLOCK_CHILD_TAGS)]
            if blocks:
                _apply_styles(item, {"margin-bottom": "0.75rem"})
                for block in blocks:
                    _apply_styles(block, {"margin-top": "0.5rem", "margin-bottom": "0.5rem"})

    def _process_blockquotes(self, root: Any) -> None:
        for quote in root.iter("blockquote"):
            _apply_styles(
                quote,
                {
                    "border-left": f"4px solid {RULE_COLOR}",
                    "padding-left": "1.25rem",
                    "margin-left": "0",
                    "margin-right": "0",
                    "margin-top": "1.5rem",
                    "margin-bottom": "1.5rem",
                    "font-style": "italic",
                    "color": MUTED_COLOR,
                },
            )

    def _process_headings(self, root: Any, settings: DisplaySettings) -> None:
        seen: Dict[str, int] = {}
        for heading in root.iter(*HEADING_SCALE):
            styles: Dict[str, Optional[str]] = {
                "font-weight": "bold",
                "color": "#2c3038",
                "margin-top": "2rem",
                "margin-bottom": "1rem",
                "line-height": "1.3",
                "font-size": _px(settings.font_size * HEADING_SCALE[heading.tag]),
            }
            if heading.tag == "h1":
                styles.update({"border-bottom": f"1px solid {RULE_COLOR}", "padding-bottom": "0.5rem"})
            elif heading.tag == "h2":
                styles.update({"border-bottom": f"1px solid {RULE_COLOR}", "padding-bottom": "0.3rem"})
            elif heading.tag == "h5":
                styles["text-transform"] = "uppercase"
            elif heading.tag == "h6":
                styles["color"] = MUTED_COLOR
            _apply_styles(heading, styles)

            slug = slugify(heading.text_content())
            if not slug:
                continue
            count = seen.get(slug, 0)
            seen[slug] = count + 1
            heading.set("id", slug if count == 0 else f"{slug}-{count}")

    def _process_paragraphs(self, root: Any, settings: DisplaySettings) -> None:
        for paragraph in root.iter("p"):
            _apply_styles(
                paragraph,
                {
                    "margin-bottom": "1.25rem",
                    "font-size": _px(settings.font_size),
                    "line-height": _number(settings.line_height),
                    "text-align": settings.text_align,
                    "color": TEXT_COLOR,
                },
            )


def normalize(
    content_html: str,
    settings: DisplaySettings = DEFAULT_DISPLAY_SETTINGS,
    parser: Optional[DocumentParser] = None,
) -> str:
    return ArticleNormalizer(parser).normalize(content_html, settings)


__all__ = [
    "ALLOWED_ATTRIBUTES",
    "ALLOWED_TAGS",
    "ArticleNormalizer",
    "is_video_embed",
    "normalize",
    "sanitize_fragment",
    "slugify",
]
