import logging
import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Mapping, Optional

import aiosqlite

from .blocks import BLOCK_SEPARATOR
from .catalog import get_block_catalog, get_brand_voice, get_value_scores
from .context import get_retrieval_context
from .db import Database
from .events import ProgressEmitter
from .classify import classify_intent
from .generate import DEFAULT_BATCH_SIZE, generate_blocks
from .llm import ModelRouter
from .reason import select_blocks
from .schemas import IntentJudgment, ReasoningResult, RenderedBlock, SessionContext


logger = logging.getLogger("uvicorn.error")

ESTIMATED_BLOCKS = 5
GENERATIVE_ZONE_RE = re.compile(r"<!--\s*generative-zone\s*-->", re.IGNORECASE)

Retriever = Callable[[str, str], Awaitable[str]]


@dataclass
class PipelineResult:
    blocks: List[RenderedBlock]
    full_html: str
    intent: IntentJudgment
    reasoning: ReasoningResult
    duration_ms: int


def assemble_page(blocks: List[RenderedBlock], hybrid_scaffold: Optional[str] = None) -> str:
    joined = BLOCK_SEPARATOR.join(block.markup for block in blocks)
    if hybrid_scaffold:
        return GENERATIVE_ZONE_RE.sub(lambda _match: joined, hybrid_scaffold)
    return joined


async def _load_retrieval_context(
    query: str,
    project_id: str,
    db: Optional[Database],
    retriever: Optional[Retriever],
) -> str:
    if retriever is None:
        return await get_retrieval_context(db, project_id, query)
    try:
        return await retriever(query, project_id) or ""
    except Exception as exc:
        logger.warning("Retriever failed for %s: %s", project_id, exc)
        return ""


async def _record_generation(
    db: Optional[Database],
    project_id: str,
    query: str,
    intent: IntentJudgment,
    blocks: List[RenderedBlock],
) -> None:
    if db is None:
        return
    try:
        await db.log_action(
            project_id,
            "ai_generate",
            f"Generated {len(blocks)} blocks for: {query[:100]}",
            {"query": query, "intent": intent.intent_type},
            {"blocks": len(blocks), "blockTypes": [block.block_type for block in blocks]},
        )
    except aiosqlite.Error as exc:
        logger.warning("Could not record generation for %s: %s", project_id, exc)


async def orchestrate(
    query: str,
    project_id: str,
    router: ModelRouter,
    credentials: Mapping[str, str],
    emitter: ProgressEmitter,
    db: Optional[Database] = None,
    retriever: Optional[Retriever] = None,
    session: Optional[SessionContext] = None,
    intent_types: Optional[List[str]] = None,
    brand_voice: Optional[str] = None,
    hybrid_scaffold: Optional[str] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> PipelineResult:
    """Run classify -> select -> generate for one query, emitting progress as it goes.

    Provider failures in any stage propagate to the caller. Lookups (catalog,
    retrieval, brand voice, value scores, history) degrade to defaults.
    """
    started = time.perf_counter()
    emitter.emit("generation-start", {"query": query, "estimatedBlocks": ESTIMATED_BLOCKS})

    emitter.emit("reasoning-start", {"stage": "classification"})
    intent = await classify_intent(query, router, credentials, session=session, intent_types=intent_types)
    emitter.emit(
        "reasoning-step",
        {
            "stage": "classification",
            "title": "Intent Classified",
            "content": f"{intent.intent_type} (confidence: {intent.confidence})",
        },
    )

    catalog = await get_block_catalog(db, project_id)
    retrieval_context = await _load_retrieval_context(query, project_id, db, retriever)
    effective_voice = brand_voice or await get_brand_voice(db, project_id)
    value_scores = await get_value_scores(db, project_id)

    emitter.emit("reasoning-start", {"stage": "reasoning"})
    reasoning = await select_blocks(
        query,
        intent,
        catalog,
        retrieval_context,
        router,
        credentials,
        session=session,
        value_scores=value_scores,
    )
    emitter.emit(
        "reasoning-step",
        {"stage": "reasoning", "title": "Blocks Selected", "content": reasoning.rationale},
    )
    emitter.emit("reasoning-complete", {"confidence": reasoning.confidence.to_wire()})

    blocks = await generate_blocks(
        reasoning.selected_blocks,
        query,
        retrieval_context,
        router,
        credentials,
        emitter,
        brand_voice=effective_voice or None,
        batch_size=batch_size,
    )
    full_html = assemble_page(blocks, hybrid_scaffold)

    await _record_generation(db, project_id, query, intent, blocks)

    duration_ms = int((time.perf_counter() - started) * 1000)
    emitter.emit(
        "generation-complete",
        {
            "totalBlocks": len(blocks),
            "duration": duration_ms,
            "intent": intent.intent_type,
            "confidence": reasoning.confidence.to_wire(),
            "followUpSuggestions": reasoning.follow_up_suggestions or [],
        },
    )
    logger.info("Generated %d blocks for project %s in %dms", len(blocks), project_id, duration_ms)
    return PipelineResult(
        blocks=blocks,
        full_html=full_html,
        intent=intent,
        reasoning=reasoning,
        duration_ms=duration_ms,
    )
