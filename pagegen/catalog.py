import json
import logging
from typing import Dict, List, Optional

import aiosqlite
from pydantic import ValidationError

from .db import Database
from .schemas import BlockCatalogEntry


logger = logging.getLogger("uvicorn.error")

DEFAULT_CATALOG: List[BlockCatalogEntry] = [
    BlockCatalogEntry(
        name="hero",
        category="structure",
        when_to_use="Page header with strong visual and headline. Use for every page.",
        data_requirements=["headline", "subheadline"],
        guardrails=["Must have a clear CTA", "Hero image should be high quality"],
    ),
    BlockCatalogEntry(
        name="cards",
        category="content",
        when_to_use="Display multiple items in a grid layout. Good for products, features, or categories.",
        data_requirements=["items (3-6)", "title per item", "image per item"],
        guardrails=["Keep card count between 3-6", "Consistent image aspect ratios"],
    ),
    BlockCatalogEntry(
        name="columns",
        category="layout",
        when_to_use="Side-by-side content layout. Good for features, comparisons, or content + image.",
        data_requirements=["2-4 column contents"],
        guardrails=["Max 4 columns", "Mobile should stack"],
    ),
    BlockCatalogEntry(
        name="accordion",
        category="content",
        when_to_use="FAQ or expandable content sections. Use when there are many Q&A pairs.",
        data_requirements=["question-answer pairs"],
        guardrails=["5-10 items ideal", "Keep answers concise"],
    ),
    BlockCatalogEntry(
        name="tabs",
        category="layout",
        when_to_use="Tabbed content for organizing related information.",
        data_requirements=["2-5 tab labels", "content per tab"],
        guardrails=["Max 5 tabs", "Tab labels should be short"],
    ),
    BlockCatalogEntry(
        name="table",
        category="content",
        when_to_use="Structured data display. Good for specs, comparisons, pricing.",
        data_requirements=["column headers", "row data"],
        guardrails=["Keep columns under 6", "Use for genuinely tabular data"],
    ),
    BlockCatalogEntry(
        name="testimonials",
        category="social-proof",
        when_to_use="Customer quotes and reviews. Builds trust and credibility.",
        data_requirements=["quote text", "attribution"],
        guardrails=["Real-sounding quotes", "Include name and role"],
    ),
    BlockCatalogEntry(
        name="cta",
        category="conversion",
        when_to_use="Call-to-action section. Use to drive specific user actions.",
        data_requirements=["headline", "button text", "button link"],
        guardrails=["Single clear action", "Compelling copy"],
    ),
]


async def get_block_catalog(db: Optional[Database], project_id: str) -> List[BlockCatalogEntry]:
    """Project catalog from ``block_library``; the default catalog when empty or unreadable."""
    if db is None:
        return list(DEFAULT_CATALOG)
    try:
        rows = await db.fetchall(
            "SELECT name, category, generative_config FROM block_library WHERE project_id=? ORDER BY name",
            (project_id,),
        )
        entries = []
        for r in rows:
            config = json.loads(r["generative_config"] or "{}")
            if not isinstance(config, dict):
                config = {}
            entries.append(
                BlockCatalogEntry(
                    name=r["name"],
                    category=r["category"] or "general",
                    when_to_use=config.get("when_to_use") or "",
                    data_requirements=config.get("data_requirements") or [],
                    guardrails=config.get("guardrails") or [],
                )
            )
    except (aiosqlite.Error, ValueError, ValidationError) as exc:
        logger.warning("Block catalog lookup failed for %s: %s", project_id, exc)
        return list(DEFAULT_CATALOG)
    return entries or list(DEFAULT_CATALOG)


async def get_value_scores(db: Optional[Database], project_id: str) -> Dict[str, float]:
    if db is None:
        return {}
    try:
        rows = await db.fetchall(
            "SELECT block_name, AVG(composite_score) AS avg_score FROM value_scores "
            "WHERE project_id=? AND block_name IS NOT NULL GROUP BY block_name",
            (project_id,),
        )
    except aiosqlite.Error as exc:
        logger.warning("Value score lookup failed for %s: %s", project_id, exc)
        return {}
    return {r["block_name"]: float(r["avg_score"]) for r in rows if r["avg_score"]}


async def get_brand_voice(db: Optional[Database], project_id: str) -> str:
    if db is None:
        return ""
    try:
        row = await db.fetchone(
            "SELECT voice, content_rules FROM brand_profiles WHERE project_id=? LIMIT 1",
            (project_id,),
        )
        if not row:
            return ""
        voice = json.loads(row["voice"] or "{}")
        rules = json.loads(row["content_rules"] or "{}")
    except (aiosqlite.Error, ValueError) as exc:
        logger.warning("Brand profile lookup failed for %s: %s", project_id, exc)
        return ""
    if not isinstance(voice, dict):
        voice = {}
    if not isinstance(rules, dict):
        rules = {}
    return f"Tone: {voice.get('tone') or 'professional'}. {voice.get('guidelines') or ''} {rules.get('guidelines') or ''}".strip()
