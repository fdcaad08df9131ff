import logging
import re
import time
from datetime import datetime
from typing import List, Optional

import aiosqlite
from pydantic import ValidationError

from .db import Database
from .schemas import QueryHistoryItem, SessionContext


logger = logging.getLogger("uvicorn.error")

SESSION_HISTORY_LIMIT = 10
SESSION_TTL_S = 60 * 60
SNIPPET_CHARS = 240
_WORD_RE = re.compile(r"[a-z0-9][a-z0-9\-]+", re.IGNORECASE)
_STOPWORDS = {
    "the", "and", "for", "with", "what", "which", "how", "are", "you", "your",
    "can", "does", "that", "this", "from", "about", "best", "show", "tell",
}


def query_terms(query: str, limit: int = 8) -> List[str]:
    terms: List[str] = []
    for word in _WORD_RE.findall(query.lower()):
        if len(word) < 3 or word in _STOPWORDS or word in terms:
            continue
        terms.append(word)
        if len(terms) >= limit:
            break
    return terms


async def get_retrieval_context(db: Optional[Database], project_id: str, query: str, limit: int = 5) -> str:
    """Keyword lookup over the project's content index. Empty string when nothing matches or on failure."""
    if db is None:
        return ""
    terms = query_terms(query)
    if not terms:
        return ""
    try:
        matches = await db.search_content(project_id, terms, limit=limit)
    except aiosqlite.Error as exc:
        logger.warning("Retrieval lookup failed for %s: %s", project_id, exc)
        return ""
    if not matches:
        return ""
    lines = []
    for match in matches:
        label = match.get("title") or match.get("path") or ""
        snippet = " ".join((match.get("body") or "").split())[:SNIPPET_CHARS]
        lines.append(f"[{label}]: {snippet}")
    return "Relevant content from this site:\n" + "\n".join(lines)


def _expired(updated_at: Optional[str]) -> bool:
    if not updated_at:
        return True
    try:
        stamp = datetime.fromisoformat(updated_at.rstrip("Z"))
    except ValueError:
        return True
    return (datetime.utcnow() - stamp).total_seconds() > SESSION_TTL_S


async def get_session_context(db: Optional[Database], session_id: Optional[str]) -> Optional[SessionContext]:
    if db is None or not session_id:
        return None
    try:
        record = await db.get_session(session_id)
    except (aiosqlite.Error, ValueError) as exc:
        logger.warning("Session lookup failed for %s: %s", session_id, exc)
        return None
    if not record or _expired(record.get("updated_at")):
        return None
    try:
        return SessionContext.model_validate(record.get("context") or {})
    except ValidationError:
        return None


async def update_session_context(
    db: Optional[Database],
    session_id: Optional[str],
    query: str,
    intent_type: str,
) -> Optional[SessionContext]:
    """Append a query to the session history, keeping the most recent entries."""
    if db is None or not session_id:
        return None
    existing = await get_session_context(db, session_id)
    history = list(existing.previous_queries) if existing else []
    history.append(QueryHistoryItem(query=query, intent_type=intent_type, timestamp=time.time()))
    context = SessionContext(previous_queries=history[-SESSION_HISTORY_LIMIT:])
    await db.save_session(session_id, context.to_wire())
    return context
