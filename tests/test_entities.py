from __future__ import annotations

import pytest

from readlater.ingestion.entities import decode_html_entities


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hi &amp; Bye", "Hi & Bye"),
        ("&lt;b&gt; &quot;q&quot; &apos;s&apos;", "<b> \"q\" 's'"),
        ("&#8212; &#x2014; &mdash;", "— — —"),
        ("Caf&eacute; costs &euro;5", "Café costs €5"),
        ("a&nbsp;b", "a\xa0b"),
        ("wait&hellip;", "wait…"),
    ],
)
def test_known_entities_are_decoded(text: str, expected: str) -> None:
    assert decode_html_entities(text) == expected


def test_unknown_names_are_left_alone() -> None:
    assert decode_html_entities("&madeup; stays") == "&madeup; stays"


@pytest.mark.parametrize("reference", ["&#1;", "&#x1;", "&#11;", "&#x1F;", "&#127;"])
def test_control_character_references_are_dropped(reference: str) -> None:
    assert decode_html_entities(f"a{reference}b") == "ab"


def test_invalid_code_points_become_replacement_characters() -> None:
    assert decode_html_entities("&#0;|&#xD800;|&#99999999;") == "�|�|�"


def test_raw_control_characters_are_removed() -> None:
    assert decode_html_entities("bell\x07 tab\tline\n") == "bell tab\tline\n"


def test_decoding_is_single_pass() -> None:
    assert decode_html_entities("&amp;lt;") == "&lt;"
    assert decode_html_entities("&amp;#1;") == "&#1;"


def test_empty_input() -> None:
    assert decode_html_entities("") == ""
    assert decode_html_entities("plain text") == "plain text"
