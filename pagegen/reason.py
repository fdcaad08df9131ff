import logging
from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError

from .llm import ModelRouter
from .parsing import parse_json_object
from .schemas import (
    BlockCatalogEntry,
    IntentJudgment,
    ReasoningResult,
    SelectedBlock,
    SelectionConfidence,
    SessionContext,
)


logger = logging.getLogger("uvicorn.error")

REASONER_SYSTEM = """You are a content strategist selecting the best blocks for a webpage.
Given the user's intent and available blocks, select and order blocks for maximum engagement.

Available blocks:
{catalog}

Context from content repository:
{context}
{journey}

Respond in JSON:
{{
  "selectedBlocks": [
    {{ "type": "block-name", "reason": "why this block", "sectionStyle": "optional-css", "priority": 1-10 }}
  ],
  "rationale": "overall reasoning",
  "confidence": {{ "intent": 0.0-1.0, "contentMatch": 0.0-1.0 }},
  "followUpSuggestions": ["suggestion1", "suggestion2"]
}}"""


def fallback_reasoning() -> ReasoningResult:
    return ReasoningResult(
        selected_blocks=[SelectedBlock(type="hero", reason="Default fallback", priority=1)],
        rationale="Could not parse reasoning result, using fallback.",
        confidence=SelectionConfidence(intent=0.3, content_match=0.3),
    )


def describe_catalog(catalog: List[BlockCatalogEntry], value_scores: Optional[Dict[str, float]] = None) -> str:
    lines = []
    for entry in catalog:
        score = (value_scores or {}).get(entry.name, entry.value_score)
        hint = f" (value score: {score:g})" if score else ""
        lines.append(f"- {entry.name} ({entry.category}): {entry.when_to_use}{hint}")
    return "\n".join(lines)


def describe_journey(session: Optional[SessionContext]) -> str:
    if not session or not session.previous_queries:
        return ""
    steps = [f'{item.intent_type}: "{item.query}"' for item in session.previous_queries]
    return "\nUser journey: " + " → ".join(steps)


def build_reasoner_messages(
    query: str,
    intent: IntentJudgment,
    catalog: List[BlockCatalogEntry],
    retrieval_context: str,
    session: Optional[SessionContext] = None,
    value_scores: Optional[Dict[str, float]] = None,
) -> List[Dict[str, str]]:
    system = REASONER_SYSTEM.format(
        catalog=describe_catalog(catalog, value_scores),
        context=retrieval_context or "",
        journey=describe_journey(session),
    )
    user = (
        f'Query: "{query}"\n'
        f"Intent: {intent.intent_type} (confidence: {intent.confidence})\n"
        f"Entities: {', '.join(intent.entities)}\n"
        f"Journey stage: {intent.journey_stage}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def parse_reasoning(raw: str) -> Optional[ReasoningResult]:
    data = parse_json_object(raw)
    if data is None:
        return None
    try:
        result = ReasoningResult.model_validate(data)
    except ValidationError:
        return None
    if not result.selected_blocks:
        return None
    return result


async def select_blocks(
    query: str,
    intent: IntentJudgment,
    catalog: List[BlockCatalogEntry],
    retrieval_context: str,
    router: ModelRouter,
    credentials: Mapping[str, str],
    session: Optional[SessionContext] = None,
    value_scores: Optional[Dict[str, float]] = None,
) -> ReasoningResult:
    messages = build_reasoner_messages(query, intent, catalog, retrieval_context, session, value_scores)
    response = await router.call("reasoning", messages, credentials)
    result = parse_reasoning(response.content)
    if result is None:
        logger.warning("Block selection unparsable; using fallback. raw=%s", response.content[:200])
        return fallback_reasoning()
    return result
