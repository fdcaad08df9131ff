import logging
from typing import List, Mapping, Optional

from pydantic import ValidationError

from .config import DEFAULT_INTENT_TYPES
from .llm import ModelRouter
from .parsing import parse_json_object
from .schemas import FALLBACK_INTENT, IntentJudgment, SessionContext


logger = logging.getLogger("uvicorn.error")

CLASSIFIER_SYSTEM = """You are an intent classifier. Classify the user query into one of these intent types: {intent_types}.
Extract key entities and determine the journey stage (exploring, comparing, deciding, supporting).
{previous}

Respond in JSON only:
{{
  "intentType": "string",
  "entities": ["string"],
  "journeyStage": "exploring|comparing|deciding|supporting",
  "confidence": 0.0-1.0
}}"""


def build_classifier_prompt(intent_types: Optional[List[str]], session: Optional[SessionContext]) -> str:
    types = ", ".join(intent_types or DEFAULT_INTENT_TYPES)
    previous = ""
    if session and session.previous_queries:
        previous = "Previous queries: " + "; ".join(item.query for item in session.previous_queries)
    return CLASSIFIER_SYSTEM.format(intent_types=types, previous=previous)


def parse_intent(raw: str) -> Optional[IntentJudgment]:
    data = parse_json_object(raw)
    if data is None:
        return None
    try:
        return IntentJudgment.model_validate(data)
    except ValidationError:
        return None


async def classify_intent(
    query: str,
    router: ModelRouter,
    credentials: Mapping[str, str],
    session: Optional[SessionContext] = None,
    intent_types: Optional[List[str]] = None,
) -> IntentJudgment:
    messages = [
        {"role": "system", "content": build_classifier_prompt(intent_types, session)},
        {"role": "user", "content": query},
    ]
    response = await router.call("classification", messages, credentials)
    judgment = parse_intent(response.content)
    if judgment is None:
        logger.warning("Intent classification unparsable; using fallback. raw=%s", response.content[:200])
        return FALLBACK_INTENT.model_copy(deep=True)
    return judgment
