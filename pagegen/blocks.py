"""Deterministic markup builders for generated blocks.

Every builder takes a validated content model and returns a fixed
row/cell structure. ``build_block_html`` is the entry point and never
raises: unknown types and unusable content fall back to a plain text
container.
"""

import html
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from .schemas import (
    AccordionContent,
    BlockContent,
    CardsContent,
    ColumnsContent,
    CTAContent,
    GenericContent,
    HeroContent,
    RenderedBlock,
    TableContent,
    TabsContent,
    TestimonialsContent,
)


logger = logging.getLogger("uvicorn.error")

PLACEHOLDER_IMAGE = "/media_placeholder.png"
BLOCK_SEPARATOR = "\n<hr>\n"


def escape_html(value: Any) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def _picture(src: Optional[str], alt: str) -> str:
    return (
        f'<picture><img src="{escape_html(src or PLACEHOLDER_IMAGE)}" '
        f'alt="{escape_html(alt)}" loading="lazy"></picture>'
    )


def _link(url: Optional[str], text: str) -> str:
    return f'<a href="{escape_html(url or "#")}">{escape_html(text)}</a>'


def _wrap(block_class: str, rows: Iterable[str]) -> str:
    body = "\n".join(rows)
    if body:
        return f'<div class="{escape_html(block_class)}">\n{body}\n</div>'
    return f'<div class="{escape_html(block_class)}">\n</div>'


def build_hero_html(content: HeroContent) -> str:
    text_lines = []
    if content.headline:
        text_lines.append(f"      <h1>{escape_html(content.headline)}</h1>")
    if content.subheadline:
        text_lines.append(f"      <p>{escape_html(content.subheadline)}</p>")
    if content.cta_text:
        text_lines.append(f"      <p>{_link(content.cta_url, content.cta_text)}</p>")
    row = "\n".join(
        [
            "  <div>",
            "    <div>",
            f"      {_picture(content.image_url, content.image_alt or content.headline)}",
            "    </div>",
            "    <div>",
            *text_lines,
            "    </div>",
            "  </div>",
        ]
    )
    return _wrap("hero", [row])


def build_cards_html(content: CardsContent) -> str:
    rows = []
    for card in content.cards:
        text_lines = [
            f"      <p><strong>{escape_html(card.title)}</strong></p>",
            f"      <p>{escape_html(card.description)}</p>",
        ]
        if card.link_text:
            text_lines.append(f"      <p>{_link(card.link_url, card.link_text)}</p>")
        rows.append(
            "\n".join(
                [
                    "  <div>",
                    "    <div>",
                    f"      {_picture(card.image_url, card.image_alt or card.title)}",
                    "    </div>",
                    "    <div>",
                    *text_lines,
                    "    </div>",
                    "  </div>",
                ]
            )
        )
    return _wrap("cards", rows)


def build_columns_html(content: ColumnsContent) -> str:
    # Columns are a single row with one cell per column.
    cells = []
    for col in content.columns:
        inner = ""
        if col.headline:
            inner += f"<h3>{escape_html(col.headline)}</h3>"
        inner += f"<p>{escape_html(col.text)}</p>"
        cells.append(f"    <div>{inner}</div>")
    if not cells:
        return _wrap("columns", [])
    return _wrap("columns", ["  <div>\n" + "\n".join(cells) + "\n  </div>"])


def build_accordion_html(content: AccordionContent) -> str:
    rows = [
        f"  <div>\n    <div>{escape_html(item.question)}</div>\n    <div>{escape_html(item.answer)}</div>\n  </div>"
        for item in content.items
    ]
    return _wrap("accordion", rows)


def build_tabs_html(content: TabsContent) -> str:
    rows = [
        f"  <div>\n    <div>{escape_html(tab.label)}</div>\n    <div><p>{escape_html(tab.content)}</p></div>\n  </div>"
        for tab in content.tabs
    ]
    return _wrap("tabs", rows)


def _table_row(cells: List[str]) -> str:
    inner = "\n".join(f"    <div>{escape_html(cell)}</div>" for cell in cells)
    if not inner:
        return "  <div>\n  </div>"
    return f"  <div>\n{inner}\n  </div>"


def build_table_html(content: TableContent) -> str:
    rows = []
    if content.headers:
        rows.append(_table_row(content.headers))
    rows.extend(_table_row(row) for row in content.rows)
    return _wrap("table", rows)


def build_testimonials_html(content: TestimonialsContent) -> str:
    rows = []
    for item in content.testimonials:
        attribution = escape_html(item.author)
        if item.role:
            attribution = f"{attribution}, {escape_html(item.role)}" if attribution else escape_html(item.role)
        rows.append(
            f"  <div>\n    <div><p>{escape_html(item.quote)}</p></div>\n    <div><p>{attribution}</p></div>\n  </div>"
        )
    return _wrap("testimonials", rows)


def build_cta_html(content: CTAContent) -> str:
    text_lines = []
    if content.headline:
        text_lines.append(f"      <h2>{escape_html(content.headline)}</h2>")
    if content.text:
        text_lines.append(f"      <p>{escape_html(content.text)}</p>")
    if content.button_text:
        text_lines.append(f"      <p>{_link(content.button_url, content.button_text)}</p>")
    row = "\n".join(["  <div>", "    <div>", *text_lines, "    </div>", "  </div>"])
    return _wrap("cta", [row])


def build_generic_html(block_type: str, content: Dict[str, Any]) -> str:
    generic = GenericContent.model_validate(content)
    if generic.headline and (generic.text or generic.content):
        inner = f"<h2>{escape_html(generic.headline)}</h2><p>{escape_html(generic.text or generic.content)}</p>"
    else:
        text = generic.content or generic.text or generic.headline
        if text is None:
            text = json.dumps(content, ensure_ascii=False, default=str)
        inner = escape_html(text)
    return _wrap(block_type or "block", [f"  <div>\n    <div>{inner}</div>\n  </div>"])


BLOCK_BUILDERS: Dict[str, Tuple[Type[BlockContent], Callable[[Any], str]]] = {
    "hero": (HeroContent, build_hero_html),
    "cards": (CardsContent, build_cards_html),
    "columns": (ColumnsContent, build_columns_html),
    "accordion": (AccordionContent, build_accordion_html),
    "tabs": (TabsContent, build_tabs_html),
    "table": (TableContent, build_table_html),
    "testimonials": (TestimonialsContent, build_testimonials_html),
    "cta": (CTAContent, build_cta_html),
}
KNOWN_BLOCK_TYPES = tuple(BLOCK_BUILDERS)
# Shapes that keep a headline but have no "text" field carry free text here instead.
TEXT_FALLBACK_FIELDS = {"hero": "subheadline"}


def _content_dict(content: Any) -> Dict[str, Any]:
    if isinstance(content, BaseModel):
        return content.model_dump(by_alias=True, exclude_none=True)
    if isinstance(content, dict):
        return content
    if content is None:
        return {}
    return {"text": content if isinstance(content, str) else json.dumps(content, ensure_ascii=False, default=str)}


def build_block_html(block_type: str, content: Any) -> str:
    data = _content_dict(content)
    key = str(block_type or "").strip().lower()
    entry = BLOCK_BUILDERS.get(key)
    if entry is None:
        return build_generic_html(str(block_type or ""), data)
    model_cls, builder = entry
    body_field = TEXT_FALLBACK_FIELDS.get(key)
    if body_field and data.get("text") and not data.get(body_field):
        data = {**data, body_field: data["text"]}
    try:
        model = model_cls.model_validate(data)
    except ValidationError as exc:
        logger.warning("Block %s content did not validate; rendering as text: %s", key, exc)
        return build_generic_html(key, data)
    if data and not model.model_fields_set:
        # Nothing usable for this shape (e.g. the raw-text parse fallback).
        return build_generic_html(key, data)
    return builder(model)


def build_page_html(blocks: List[Any], title: str, query: str) -> str:
    sections = []
    for block in blocks:
        if isinstance(block, RenderedBlock):
            markup, style = block.markup, block.section_style
        else:
            markup = str(block.get("html") or block.get("markup") or "")
            style = block.get("sectionStyle") or block.get("section_style")
        metadata = ""
        if style and style != "default":
            metadata = (
                '\n<div class="section-metadata">\n  <div>\n    <div>style</div>\n'
                f"    <div>{escape_html(style)}</div>\n  </div>\n</div>"
            )
        sections.append(f"<div>\n{markup}{metadata}\n</div>")
    body = "\n".join(sections)
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"  <title>{escape_html(title)}</title>\n"
        f'  <meta name="description" content="{escape_html(query)}">\n'
        '  <meta name="template" content="generative">\n'
        "</head>\n<body>\n  <header></header>\n  <main>\n"
        f"{body}\n"
        "  </main>\n  <footer></footer>\n</body>\n</html>"
    )


def try_build_from_json(text: str) -> Optional[str]:
    """Build a full page from ``{title?, blocks: [{type, content, sectionStyle?}]}``."""
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict) or not isinstance(parsed.get("blocks"), list):
        return None
    rendered = []
    for idx, item in enumerate(parsed["blocks"]):
        if not isinstance(item, dict):
            continue
        block_type = str(item.get("type") or "")
        rendered.append(
            RenderedBlock(
                block_type=block_type,
                markup=build_block_html(block_type, item.get("content")),
                section_style=item.get("sectionStyle"),
                index=idx,
            )
        )
    title = str(parsed.get("title") or "Generated Page")
    return build_page_html(rendered, title, title)
