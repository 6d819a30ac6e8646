from __future__ import annotations

from core.templates.normalizer import collapse_whitespace, context_snippet, normalize_document_xml


def test_normalize_joins_runs_and_splits_paragraphs() -> None:
    xml = (
        "<w:body>"
        "<w:p><w:r><w:t>Dear {{client</w:t></w:r><w:r><w:t>_name}},</w:t></w:r></w:p>"
        "<w:p><w:r><w:t>Thanks</w:t></w:r></w:p>"
        "</w:body>"
    )

    assert normalize_document_xml(xml) == "Dear {{client_name}},\nThanks\n"


def test_normalize_decodes_entities_once() -> None:
    xml = "<w:p><w:r><w:t>A &amp; B &lt;C&gt; &amp;lt;</w:t></w:r></w:p>"

    assert normalize_document_xml(xml) == "A & B <C> &lt;\n"


def test_normalize_maps_tabs_and_breaks() -> None:
    xml = (
        "<w:p><w:pPr><w:tabs><w:tab w:val=\"left\" w:pos=\"720\"/></w:tabs></w:pPr>"
        "<w:r><w:t>Name:</w:t><w:tab/><w:t>$[___]</w:t><w:br/><w:t>next</w:t></w:r></w:p>"
    )

    assert normalize_document_xml(xml) == "Name:\t$[___]\nnext\n"


def test_normalize_treats_empty_paragraph_as_line_end() -> None:
    xml = "<w:p/><w:p><w:r><w:t>x</w:t></w:r></w:p>"

    assert normalize_document_xml(xml) == "\nx\n"


def test_context_snippet_is_windowed_and_collapsed() -> None:
    text = "aaaa   bbbb\n{{token}}\ncccc    dddd"
    start = text.index("{{")
    end = start + len("{{token}}")

    assert context_snippet(text, start, end, window=6) == "bbbb {{token}} cccc"
    assert collapse_whitespace("  a \n\t b  ") == "a b"
