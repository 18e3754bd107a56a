from __future__ import annotations

from lxml import html as lxml_html

from readlater.ingestion.parsers import RegexDocumentParser
from readlater.ingestion.presanitizer import Presanitizer, presanitize, resolve_url
from readlater.telemetry import metrics

BASE_URL = "https://example.com/blog/post"


def _tree(markup: str):
    return lxml_html.document_fromstring(markup)


def test_stray_list_child_is_wrapped_in_list_item() -> None:
    result = presanitize("<ul><li>A</li><div>B</div></ul>", BASE_URL)

    tree = _tree(result)
    items = tree.xpath("//ul/*")
    assert [item.tag for item in items] == ["li", "li"]
    assert items[0].text_content() == "A"
    assert items[1].xpath("./div")[0].text == "B"


def test_stray_text_inside_list_is_wrapped() -> None:
    result = presanitize("<ol>intro<li>one</li>tail text</ol>", BASE_URL)

    tree = _tree(result)
    assert [li.text_content() for li in tree.xpath("//ol/li")] == ["intro", "one", "tail text"]


def test_nested_list_moves_into_previous_item() -> None:
    result = presanitize("<ul><li>A</li><ul><li>B</li></ul></ul>", BASE_URL)

    tree = _tree(result)
    assert tree.xpath("//ul/ul") == []
    nested = tree.xpath("//ul/li/ul")
    assert len(nested) == 1
    assert nested[0].getparent().text == "A"
    assert nested[0].xpath("./li")[0].text == "B"


def test_empty_lists_are_removed_repeatedly() -> None:
    result = presanitize("<div><ol><ul>  </ul></ol><p>kept</p><ul></ul></div>", BASE_URL)

    tree = _tree(result)
    assert tree.xpath("//ul | //ol") == []
    assert tree.xpath("//p")[0].text == "kept"


def test_every_list_child_is_a_list_item() -> None:
    markup = """
    <ul>
      <li>one</li>
      <p>two</p>
      <ol><li>three</li></ol>
      <span>four</span>
    </ul>
    <ol></ol>
    """
    tree = _tree(presanitize(markup, BASE_URL))

    for lst in tree.xpath("//ul | //ol"):
        assert all(child.tag == "li" for child in lst)
        assert not (lst.text or "").strip()
        assert all(not (child.tail or "").strip() for child in lst)
        assert len(lst) > 0


def test_executable_markup_and_handlers_are_removed() -> None:
    markup = """
    <html><head><style>p { color: red }</style><script>alert(1)</script></head>
    <body>
      <!-- tracking -->
      <p onclick="steal()" onmouseover="x()">Hello</p>
      <form action="/login"><input name="password"></form>
      <noscript><img src="/pixel.gif"></noscript>
      <script type="text/javascript">
        document.write("<p>injected</p>");
      </script>
    </body></html>
    """
    result = presanitize(markup, BASE_URL)
    lowered = result.lower()

    for marker in ("<script", "<style", "<form", "<noscript", "<!--", "onclick", "onmouseover", "injected"):
        assert marker not in lowered
    assert "Hello" in result


def test_urls_are_made_absolute() -> None:
    markup = """
    <img src="/images/a.png">
    <img src="data:image/png;base64,AAAA">
    <a href="next">Next</a>
    <a href="#section">Jump</a>
    <a href="mailto:editor@example.com">Mail</a>
    <iframe src="//player.vimeo.com/video/1"></iframe>
    """
    tree = _tree(presanitize(markup, BASE_URL))

    images = tree.xpath("//img")
    assert images[0].get("src") == "https://example.com/images/a.png"
    assert images[0].get("loading") == "lazy"
    assert "max-width: 100%" in images[0].get("style")
    assert images[1].get("src").startswith("data:image/png")

    links = {link.text: link for link in tree.xpath("//a")}
    assert links["Next"].get("href") == "https://example.com/blog/next"
    assert links["Next"].get("target") == "_blank"
    assert links["Next"].get("rel") == "noopener noreferrer"
    assert links["Jump"].get("href") == "#section"
    assert links["Jump"].get("target") is None
    assert links["Mail"].get("href") == "mailto:editor@example.com"

    assert tree.xpath("//iframe")[0].get("src") == "https://player.vimeo.com/video/1"


def test_every_resource_url_is_absolute_or_allowed() -> None:
    markup = """
    <p><a href="../up">a</a><a href="?q=1">b</a><a href="javascript:alert(1)">c</a>
    <img src="img.jpg"><img src="javascript:alert(2)"><iframe src="embed/1"></iframe></p>
    """
    tree = _tree(presanitize(markup, BASE_URL))

    for element, attribute in [(el, "href") for el in tree.xpath("//a[@href]")] + [
        (el, "src") for el in tree.xpath("//img[@src] | //iframe[@src]")
    ]:
        value = element.get(attribute)
        assert value.startswith(("http:", "https:", "#", "mailto:", "data:image/")), value

    javascript_link = [a for a in tree.xpath("//a") if a.text == "c"][0]
    assert javascript_link.get("href") is None
    assert metrics.last_degraded is not None
    assert metrics.last_degraded.stage == "presanitize"


def test_media_sources_and_posters_are_made_absolute() -> None:
    markup = """
    <video src="/v.mp4" poster="thumb.jpg"><source src="clip.webm" type="video/webm"><track src="subs.vtt"></video>
    <audio src="../podcast.mp3"><source src="javascript:alert(1)"></audio>
    """
    tree = _tree(presanitize(markup, BASE_URL))

    video = tree.xpath("//video")[0]
    assert video.get("src") == "https://example.com/v.mp4"
    assert video.get("poster") == "https://example.com/blog/thumb.jpg"
    assert tree.xpath("//video/source")[0].get("src") == "https://example.com/blog/clip.webm"
    assert tree.xpath("//track")[0].get("src") == "https://example.com/blog/subs.vtt"
    assert tree.xpath("//audio")[0].get("src") == "https://example.com/podcast.mp3"
    assert tree.xpath("//audio/source")[0].get("src") is None


def test_youtube_iframes_are_upgraded_and_allowed_fullscreen() -> None:
    result = presanitize('<iframe src="http://www.youtube.com/embed/abc"></iframe>', BASE_URL)

    iframe = _tree(result).xpath("//iframe")[0]
    assert iframe.get("src") == "https://www.youtube.com/embed/abc"
    assert iframe.get("allowfullscreen") == "true"
    assert iframe.get("loading") == "lazy"
    assert "encrypted-media" in iframe.get("allow")


def test_invalid_base_url_returns_stripped_markup(caplog) -> None:
    result = presanitize('<p>text</p><script>alert(1)</script><img src="/a.png">', "not a url")

    assert result == '<p>text</p><img src="/a.png">'
    assert metrics.last_degraded.reason == "invalid_base_url"
    assert any(getattr(record, "event", None) == "sanitize.degraded" for record in caplog.records)


def test_regex_parser_fallback_still_strips_scripts() -> None:
    sanitizer = Presanitizer(RegexDocumentParser())

    result = sanitizer.presanitize("<p>a</p><script>evil()</script><style>x{}</style>", BASE_URL)

    assert result == "<p>a</p>"
    assert metrics.last_degraded.reason == "parser_unavailable"


def test_resolve_url_keeps_absolute_values() -> None:
    assert resolve_url("https://cdn.example.net/x.png", BASE_URL) == "https://cdn.example.net/x.png"
    assert resolve_url("/x.png", BASE_URL) == "https://example.com/x.png"
    assert resolve_url("tel:+123", BASE_URL, link=True) == "tel:+123"
