"""Per-block content generation.

Each selected block gets one content-role call asking for strict JSON in the
block's shape. The JSON is rendered by ``blocks.build_block_html``; the model
never writes markup. Blocks run in bounded batches via ``asyncio.gather``,
and a batch finishes before the next one starts.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from .blocks import build_block_html
from .events import ProgressEmitter
from .llm import ModelRouter
from .parsing import parse_json_object
from .schemas import RenderedBlock, SelectedBlock


logger = logging.getLogger("uvicorn.error")

DEFAULT_BATCH_SIZE = 3

BLOCK_CONTENT_SCHEMAS: Dict[str, str] = {
    "hero": """{
  "headline": "string - compelling H1 headline",
  "subheadline": "string (optional) - supporting paragraph",
  "ctaText": "string (optional) - call-to-action button text",
  "ctaUrl": "string (optional) - CTA link URL",
  "imageAlt": "string (optional) - alt text for the hero image"
}""",
    "cards": """{
  "cards": [
    {
      "title": "string - card title",
      "description": "string - card body text",
      "imageAlt": "string (optional) - alt text for card image",
      "linkText": "string (optional) - link text",
      "linkUrl": "string (optional) - link URL"
    }
  ]
}
Generate 3-6 cards.""",
    "columns": """{
  "columns": [
    {
      "headline": "string (optional) - column heading",
      "text": "string - column body text"
    }
  ]
}
Generate 2-4 columns.""",
    "accordion": """{
  "items": [
    {
      "question": "string - the question",
      "answer": "string - the answer"
    }
  ]
}
Generate 3-6 FAQ items.""",
    "tabs": """{
  "tabs": [
    {
      "label": "string - tab label",
      "content": "string - tab content text"
    }
  ]
}
Generate 2-5 tabs.""",
    "table": """{
  "headers": ["string - column header", ...],
  "rows": [["string - cell value", ...], ...]
}
Generate a table with 2-5 columns and 3-6 data rows.""",
    "testimonials": """{
  "testimonials": [
    {
      "quote": "string - the testimonial quote",
      "author": "string - person's name",
      "role": "string (optional) - job title or role"
    }
  ]
}
Generate 2-4 testimonials.""",
    "cta": """{
  "headline": "string - CTA headline",
  "text": "string (optional) - supporting text",
  "buttonText": "string - button label",
  "buttonUrl": "string - button link URL"
}""",
}

GENERATOR_SYSTEM = """You are a content generator. Generate JSON content for a "{block_type}" block.

Return ONLY valid JSON matching this schema. No markdown fences, no explanations, no extra text:

{schema}
{brand}"""


def get_block_content_schema(block_type: str) -> str:
    schema = BLOCK_CONTENT_SCHEMAS.get(str(block_type or "").strip().lower())
    if schema:
        return schema
    return (
        '{\n  "content": "string - the block content"\n}\n'
        f'Return a simple JSON object with relevant content fields for this "{block_type}" block.'
    )


def parse_block_content(raw: str, query: str) -> Dict[str, Any]:
    content = parse_json_object(raw)
    if content is None:
        logger.info("Block content was not a JSON object; wrapping raw text")
        return {"headline": query, "text": raw}
    return content


def build_generator_messages(
    block: SelectedBlock,
    query: str,
    retrieval_context: str,
    brand_voice: Optional[str] = None,
) -> List[Dict[str, str]]:
    system = GENERATOR_SYSTEM.format(
        block_type=block.type,
        schema=get_block_content_schema(block.type),
        brand=f"\nBrand voice: {brand_voice}" if brand_voice else "",
    )
    user = (
        f'Generate content for a "{block.type}" block.\n'
        f'Topic: "{query}"\n'
        f"Reason this block was chosen: {block.reason}\n"
        f"Context: {retrieval_context or ''}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


async def _generate_one(
    block: SelectedBlock,
    index: int,
    query: str,
    retrieval_context: str,
    router: ModelRouter,
    credentials: Mapping[str, str],
    emitter: Optional[ProgressEmitter],
    brand_voice: Optional[str],
) -> RenderedBlock:
    if emitter is not None:
        emitter.emit("block-start", {"blockType": block.type, "index": index})
    messages = build_generator_messages(block, query, retrieval_context, brand_voice)
    response = await router.call("content", messages, credentials)
    content = parse_block_content(response.content, query)
    markup = build_block_html(block.type, content)
    if emitter is not None:
        emitter.emit("block-content", {"html": markup, "sectionStyle": block.section_style, "index": index})
    return RenderedBlock(block_type=block.type, markup=markup, section_style=block.section_style, index=index)


async def generate_blocks(
    blocks: List[SelectedBlock],
    query: str,
    retrieval_context: str,
    router: ModelRouter,
    credentials: Mapping[str, str],
    emitter: Optional[ProgressEmitter],
    brand_voice: Optional[str] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[RenderedBlock]:
    size = max(1, int(batch_size or DEFAULT_BATCH_SIZE))
    rendered: List[RenderedBlock] = []
    for start in range(0, len(blocks), size):
        batch = blocks[start : start + size]
        results = await asyncio.gather(
            *[
                _generate_one(block, start + offset, query, retrieval_context, router, credentials, emitter, brand_voice)
                for offset, block in enumerate(batch)
            ]
        )
        rendered.extend(results)
    return rendered
