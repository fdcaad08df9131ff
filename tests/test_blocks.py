import json

import pytest

from pagegen.blocks import (
    KNOWN_BLOCK_TYPES,
    build_block_html,
    build_page_html,
    escape_html,
    try_build_from_json,
)
from pagegen.schemas import RenderedBlock
from tests.fakes import DEFAULT_CONTENT


def test_escape_html_covers_markup_characters():
    escaped = escape_html("<a href=\"x\">Tom & 'Jerry'</a>")
    assert "<" not in escaped and ">" not in escaped
    assert "&amp;" in escaped
    assert "&quot;" in escaped
    assert "'" not in escaped
    assert escape_html(None) == ""


def test_hero_markup_shape_and_defaults():
    html = build_block_html("hero", {"headline": "Find your blender", "ctaText": "Shop", "ctaUrl": "/shop"})
    assert html.startswith('<div class="hero">')
    assert "<h1>Find your blender</h1>" in html
    assert 'src="/media_placeholder.png"' in html
    assert 'alt="Find your blender"' in html
    assert '<a href="/shop">Shop</a>' in html
    # No subheadline given, so only the CTA paragraph follows the heading.
    assert html.count("<p>") == 1


def test_hero_cta_without_url_links_to_hash():
    html = build_block_html("hero", {"headline": "H", "ctaText": "Go"})
    assert '<a href="#">Go</a>' in html


def test_cards_render_one_row_per_card():
    html = build_block_html("cards", DEFAULT_CONTENT["cards"])
    assert html.count("<strong>") == 3
    assert "<p><strong>A3500</strong></p>" in html
    assert "<p>Flagship</p>" in html


def test_columns_render_single_row_of_cells():
    html = build_block_html("columns", DEFAULT_CONTENT["columns"])
    assert "<div><h3>Fast</h3><p>Blends in seconds</p></div>" in html
    assert "<div><p>Quiet motor</p></div>" in html
    # one row wrapper inside the block
    assert html.count("\n  <div>\n") == 1


def test_accordion_tabs_table_testimonials_cta():
    accordion = build_block_html("accordion", DEFAULT_CONTENT["accordion"])
    assert "<div>Warranty?</div>" in accordion and "<div>Ten years.</div>" in accordion

    tabs = build_block_html("tabs", DEFAULT_CONTENT["tabs"])
    assert "<div>Specs</div>" in tabs and "<div><p>2.2 HP</p></div>" in tabs

    table = build_block_html("table", DEFAULT_CONTENT["table"])
    assert table.index("<div>Model</div>") < table.index("<div>A3500</div>")
    assert "<div>$349</div>" in table

    testimonials = build_block_html("testimonials", DEFAULT_CONTENT["testimonials"])
    assert "<p>Life changing</p>" in testimonials
    assert "<p>Sam, Chef</p>" in testimonials

    cta = build_block_html("cta", DEFAULT_CONTENT["cta"])
    assert "<h2>Ready?</h2>" in cta
    assert '<a href="/buy">Buy now</a>' in cta


@pytest.mark.parametrize("block_type", KNOWN_BLOCK_TYPES)
def test_known_types_tolerate_missing_fields(block_type):
    html = build_block_html(block_type, {})
    assert html.startswith(f'<div class="{block_type}">')


@pytest.mark.parametrize("block_type", KNOWN_BLOCK_TYPES)
def test_schema_content_renders_required_fields(block_type):
    html = build_block_html(block_type, DEFAULT_CONTENT[block_type])
    for value in _required_values(block_type, DEFAULT_CONTENT[block_type]):
        assert escape_html(value) in html


def _required_values(block_type, content):
    if block_type in ("hero",):
        return [content["headline"]]
    if block_type == "cards":
        return [c["title"] for c in content["cards"]] + [c["description"] for c in content["cards"]]
    if block_type == "columns":
        return [c["text"] for c in content["columns"]]
    if block_type == "accordion":
        return [i["question"] for i in content["items"]] + [i["answer"] for i in content["items"]]
    if block_type == "tabs":
        return [t["label"] for t in content["tabs"]] + [t["content"] for t in content["tabs"]]
    if block_type == "table":
        return content["headers"] + [cell for row in content["rows"] for cell in row]
    if block_type == "testimonials":
        return [t["quote"] for t in content["testimonials"]] + [t["author"] for t in content["testimonials"]]
    return [content["headline"], content["buttonText"]]


def _marked(tag):
    return f"<i>{tag}</i>"


MARKED_CONTENT = {
    "hero": {
        "headline": _marked("headline"),
        "subheadline": _marked("sub"),
        "ctaText": _marked("cta-text"),
        "ctaUrl": _marked("cta-url"),
        "imageUrl": _marked("img"),
        "imageAlt": _marked("alt"),
    },
    "cards": {
        "cards": [
            {
                "title": _marked("title"),
                "description": _marked("desc"),
                "imageUrl": _marked("img"),
                "imageAlt": _marked("alt"),
                "linkText": _marked("link-text"),
                "linkUrl": _marked("link-url"),
            }
        ]
    },
    "columns": {"columns": [{"headline": _marked("headline"), "text": _marked("text")}]},
    "accordion": {"items": [{"question": _marked("q"), "answer": _marked("a")}]},
    "tabs": {"tabs": [{"label": _marked("label"), "content": _marked("content")}]},
    "table": {"headers": [_marked("header")], "rows": [[_marked("cell")]]},
    "testimonials": {
        "testimonials": [{"quote": _marked("quote"), "author": _marked("author"), "role": _marked("role")}]
    },
    "cta": {
        "headline": _marked("headline"),
        "text": _marked("text"),
        "buttonText": _marked("button-text"),
        "buttonUrl": _marked("button-url"),
    },
}


def _strings(value):
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        value = list(value.values())
    return [s for item in value for s in _strings(item)]


@pytest.mark.parametrize("block_type", KNOWN_BLOCK_TYPES)
def test_user_text_is_escaped(block_type):
    content = MARKED_CONTENT[block_type]
    html = build_block_html(block_type, content)
    assert "<i>" not in html
    for text in _strings(content):
        assert escape_html(text) in html


def test_ampersands_and_quotes_are_escaped():
    html = build_block_html("cards", {"cards": [{"title": "<script>alert(1)</script>", "description": "a & \"b\""}]})
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "a &amp; &quot;b&quot;" in html


def test_wrong_shapes_degrade_instead_of_raising():
    html = build_block_html("cards", {"cards": ["not a card", {"title": 42, "description": None}]})
    assert "<p><strong>42</strong></p>" in html
    html = build_block_html("table", {"headers": "Model", "rows": [["a", 1], "bad"]})
    assert "<div>1</div>" in html
    assert build_block_html("hero", "just text").startswith('<div class="hero">')


def test_unknown_type_renders_generic_container():
    html = build_block_html("quote-wall", {"content": "Hello <world>"})
    assert html == '<div class="quote-wall">\n  <div>\n    <div>Hello &lt;world&gt;</div>\n  </div>\n</div>'


def test_unknown_type_without_text_dumps_json():
    html = build_block_html("widget", {"items": [1, 2]})
    assert escape_html(json.dumps({"items": [1, 2]})) in html


def test_raw_text_fallback_for_known_type_keeps_text():
    html = build_block_html("cards", {"headline": "blenders", "text": "Some prose the model wrote"})
    assert html.startswith('<div class="cards">')
    assert "<h2>blenders</h2>" in html
    assert "Some prose the model wrote" in html


def test_raw_text_fallback_for_hero_keeps_text():
    html = build_block_html("hero", {"headline": "blenders", "text": "Some prose the model wrote"})
    assert html.startswith('<div class="hero">')
    assert "<h1>blenders</h1>" in html
    assert "<p>Some prose the model wrote</p>" in html

    html = build_block_html("hero", {"headline": "h", "subheadline": "Given", "text": "spare"})
    assert "<p>Given</p>" in html
    assert "spare" not in html


def test_non_dict_content_is_treated_as_text():
    html = build_block_html("mystery", "plain words")
    assert "<div>plain words</div>" in html


def test_build_page_html_adds_section_metadata_for_styles():
    blocks = [
        RenderedBlock(block_type="hero", markup="<div class=\"hero\"></div>", section_style="dark", index=0),
        RenderedBlock(block_type="cta", markup="<div class=\"cta\"></div>", section_style="default", index=1),
    ]
    page = build_page_html(blocks, "Blenders", "best blender")
    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Blenders</title>" in page
    assert '<meta name="description" content="best blender">' in page
    assert '<meta name="template" content="generative">' in page
    assert page.count('class="section-metadata"') == 1
    assert "<div>dark</div>" in page


def test_try_build_from_json_builds_page():
    payload = json.dumps(
        {
            "title": "Demo",
            "blocks": [
                {"type": "hero", "content": {"headline": "Hi"}},
                {"type": "cta", "content": {"headline": "Go", "buttonText": "Now"}, "sectionStyle": "accent"},
            ],
        }
    )
    page = try_build_from_json(payload)
    assert page is not None
    assert "<h1>Hi</h1>" in page
    assert "<div>accent</div>" in page


@pytest.mark.parametrize("raw", ["not json", "[]", '{"blocks": "nope"}', ""])
def test_try_build_from_json_rejects_bad_input(raw):
    assert try_build_from_json(raw) is None
