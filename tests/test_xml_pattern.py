from __future__ import annotations

import re

import pytest

from core.render.xml_pattern import (
    Replacement,
    apply_replacements,
    build_curly_pattern,
    build_pattern,
    replace_matches,
    select_matches,
    token_key,
)

SPLIT_RUNS_XML = (
    "<w:p><w:r><w:t>Dear {{</w:t></w:r>"
    '<w:r><w:rPr><w:b/></w:rPr><w:t xml:space="preserve"> client_</w:t></w:r>'
    "<w:r><w:t>name }}!</w:t></w:r></w:p>"
)


def test_token_key_drops_whitespace() -> None:
    assert token_key("{{ client name }}") == "{{clientname}}"


def test_build_pattern_rejects_blank() -> None:
    with pytest.raises(ValueError):
        build_pattern("   ")


def test_curly_pattern_matches_across_runs() -> None:
    pattern = build_curly_pattern("client_name")

    match = re.search(pattern, SPLIT_RUNS_XML)

    assert match is not None
    assert match.group(0).startswith("{{")
    assert match.group(0).endswith("}}")


def test_pattern_matches_escaped_characters() -> None:
    xml = "<w:t>$[Terms &amp; Conditions]</w:t>"

    assert re.search(build_pattern("$[Terms & Conditions]"), xml) is not None


def test_pattern_does_not_cross_paragraphs() -> None:
    xml = "<w:p><w:r><w:t>{{na</w:t></w:r></w:p><w:p><w:r><w:t>me}}</w:t></w:r></w:p>"

    assert re.search(build_curly_pattern("name"), xml) is None


def test_replace_keeps_run_markup_balanced() -> None:
    new_xml, match_count, replaced = replace_matches(
        SPLIT_RUNS_XML, build_curly_pattern("client_name"), "Acme & Co"
    )

    assert (match_count, replaced) == (1, 1)
    assert new_xml.count("<w:r>") == SPLIT_RUNS_XML.count("<w:r>")
    assert new_xml.count("</w:r>") == SPLIT_RUNS_XML.count("</w:r>")
    assert "Dear Acme &amp; Co</w:t>" in new_xml
    assert "{{" not in new_xml
    assert new_xml.endswith("<w:t>!</w:t></w:r></w:p>")


def test_replace_with_zero_matches_is_noop() -> None:
    xml = "<w:t>nothing here</w:t>"

    assert replace_matches(xml, build_curly_pattern("x"), "v") == (xml, 0, 0)


def test_select_matches_by_occurrence() -> None:
    xml = "<w:t>$[date] and $[ date ] and $[date]</w:t>"
    pattern = build_pattern("$[date]")

    matches, total = select_matches(xml, pattern, occurrence=2)

    assert total == 3
    assert [match.group(0) for match in matches] == ["$[ date ]"]
    assert select_matches(xml, pattern, occurrence=5) == ([], 3)
    with pytest.raises(ValueError):
        select_matches(xml, pattern, occurrence=0)


def test_apply_replacements_rejects_overlaps() -> None:
    xml = "0123456789"
    replacements = [
        Replacement(key="b", start=4, end=8, text="B"),
        Replacement(key="a", start=1, end=5, text="A"),
        Replacement(key="c", start=8, end=9, text="C"),
    ]

    new_xml, applied, rejected = apply_replacements(xml, replacements)

    assert new_xml == "0A567C9"
    assert [item.key for item in applied] == ["a", "c"]
    assert [item.key for item in rejected] == ["b"]


@pytest.mark.parametrize(
    ("raw", "xml"),
    [
        ("$[amount]", "<w:t>$ [amount]</w:t>"),
        ("$[amount]", "<w:t>$</w:t></w:r><w:r><w:tab/><w:t>[amount]</w:t>"),
        ("{{name}}", "<w:t>{ {name}}</w:t>"),
        ("{{name}}", "<w:t>{{name} }</w:t>"),
    ],
)
def test_delimiters_do_not_tolerate_text_between_their_characters(raw: str, xml: str) -> None:
    assert re.search(build_pattern(raw), xml) is None


def test_delimiters_tolerate_run_markup_between_their_characters() -> None:
    xml = (
        "<w:r><w:t>$</w:t></w:r><w:r><w:rPr><w:i/></w:rPr><w:t>[amount]</w:t></w:r>"
        "<w:r><w:t>{</w:t></w:r><w:r><w:t>{name}</w:t></w:r><w:r><w:t>}</w:t></w:r>"
    )

    assert re.search(build_pattern("$[amount]"), xml) is not None
    assert re.search(build_curly_pattern("name"), xml) is not None
