import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite


def utc_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class Database:
    def __init__(self, path: str):
        self.path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(
                """
                PRAGMA journal_mode=WAL;
                CREATE TABLE IF NOT EXISTS block_library(
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT,
                    generative_config TEXT,
                    updated_at TEXT,
                    UNIQUE(project_id, name)
                );
                CREATE TABLE IF NOT EXISTS value_scores(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    path TEXT,
                    block_name TEXT,
                    composite_score REAL,
                    created_at TEXT
                );
                CREATE TABLE IF NOT EXISTS brand_profiles(
                    project_id TEXT PRIMARY KEY,
                    name TEXT,
                    voice TEXT,
                    content_rules TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS content_index(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    path TEXT,
                    title TEXT,
                    body TEXT,
                    updated_at TEXT,
                    UNIQUE(project_id, path)
                );
                CREATE TABLE IF NOT EXISTS action_history(
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    project_id TEXT,
                    action_type TEXT,
                    description TEXT,
                    input TEXT,
                    output TEXT,
                    status TEXT DEFAULT 'completed',
                    created_at TEXT
                );
                CREATE TABLE IF NOT EXISTS sessions(
                    session_id TEXT PRIMARY KEY,
                    context_json TEXT,
                    updated_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_action_history_recent
                    ON action_history(project_id, created_at DESC);
                """
            )
            await db.commit()

    async def execute(self, query: str, params: Tuple[Any, ...] = ()) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(query, params)
            await db.commit()

    async def fetchall(self, query: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
            return rows

    async def fetchone(self, query: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    async def add_block(
        self,
        project_id: str,
        name: str,
        category: str = "general",
        when_to_use: str = "",
        data_requirements: Optional[List[str]] = None,
        guardrails: Optional[List[str]] = None,
    ) -> None:
        config = {
            "when_to_use": when_to_use,
            "data_requirements": data_requirements or [],
            "guardrails": guardrails or [],
        }
        await self.execute(
            "INSERT INTO block_library(id, project_id, name, category, generative_config, updated_at) "
            "VALUES (?,?,?,?,?,?) ON CONFLICT(project_id, name) DO UPDATE SET "
            "category=excluded.category, generative_config=excluded.generative_config, updated_at=excluded.updated_at",
            (uuid.uuid4().hex, project_id, name, category, json.dumps(config), utc_now()),
        )

    async def set_value_score(self, project_id: str, block_name: str, score: float, path: str = "/") -> None:
        await self.execute(
            "INSERT INTO value_scores(project_id, path, block_name, composite_score, created_at) VALUES (?,?,?,?,?)",
            (project_id, path, block_name, float(score), utc_now()),
        )

    async def set_brand_profile(
        self,
        project_id: str,
        voice: Dict[str, Any],
        content_rules: Optional[Dict[str, Any]] = None,
        name: str = "",
    ) -> None:
        await self.execute(
            "INSERT INTO brand_profiles(project_id, name, voice, content_rules, updated_at) VALUES (?,?,?,?,?) "
            "ON CONFLICT(project_id) DO UPDATE SET name=excluded.name, voice=excluded.voice, "
            "content_rules=excluded.content_rules, updated_at=excluded.updated_at",
            (project_id, name, json.dumps(voice), json.dumps(content_rules or {}), utc_now()),
        )

    async def index_content(self, project_id: str, path: str, title: str, body: str) -> None:
        await self.execute(
            "INSERT INTO content_index(project_id, path, title, body, updated_at) VALUES (?,?,?,?,?) "
            "ON CONFLICT(project_id, path) DO UPDATE SET title=excluded.title, body=excluded.body, "
            "updated_at=excluded.updated_at",
            (project_id, path, title, body, utc_now()),
        )

    async def search_content(self, project_id: str, terms: List[str], limit: int = 5) -> List[dict]:
        terms = [t.lower() for t in terms if t]
        if not terms:
            return []
        clauses = " OR ".join("(title LIKE ? OR body LIKE ?)" for _ in terms)
        params: List[Any] = [project_id]
        for term in terms:
            pattern = f"%{term}%"
            params.extend([pattern, pattern])
        rows = await self.fetchall(
            f"SELECT path, title, body FROM content_index WHERE project_id=? AND ({clauses}) "
            "ORDER BY updated_at DESC LIMIT 50",
            tuple(params),
        )
        scored = []
        for r in rows:
            haystack = f"{r['title'] or ''} {r['body'] or ''}".lower()
            hits = sum(1 for term in terms if term in haystack)
            scored.append((hits, {"path": r["path"], "title": r["title"], "body": r["body"]}))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in scored[:limit]]

    async def log_action(
        self,
        project_id: str,
        action_type: str,
        description: str,
        input_payload: dict,
        output_payload: dict,
        status: str = "completed",
        user_id: str = "system",
    ) -> str:
        action_id = uuid.uuid4().hex
        await self.execute(
            "INSERT INTO action_history(id, user_id, project_id, action_type, description, input, output, status, created_at) "
            "VALUES (?,?,?,?,?,?,?,?,?)",
            (
                action_id,
                user_id,
                project_id,
                action_type,
                description,
                json.dumps(input_payload),
                json.dumps(output_payload),
                status,
                utc_now(),
            ),
        )
        return action_id

    async def list_actions(self, project_id: str, action_type: str = "ai_generate", limit: int = 50) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, description, input, output, status, created_at FROM action_history "
            "WHERE project_id=? AND action_type=? ORDER BY created_at DESC LIMIT ?",
            (project_id, action_type, limit),
        )
        return [
            {
                "id": r["id"],
                "description": r["description"],
                "input": json.loads(r["input"] or "{}"),
                "output": json.loads(r["output"] or "{}"),
                "status": r["status"],
                "createdAt": r["created_at"],
            }
            for r in rows
        ]

    async def action_stats(self, project_id: str, action_type: str = "ai_generate", days: int = 30) -> dict:
        since = (datetime.utcnow() - timedelta(days=days)).isoformat() + "Z"
        total = await self.fetchone(
            "SELECT COUNT(*) AS total FROM action_history WHERE project_id=? AND action_type=? AND created_at >= ?",
            (project_id, action_type, since),
        )
        daily = await self.fetchall(
            "SELECT substr(created_at, 1, 10) AS date, COUNT(*) AS count FROM action_history "
            "WHERE project_id=? AND action_type=? AND created_at >= ? GROUP BY date ORDER BY date",
            (project_id, action_type, since),
        )
        return {
            "totalGenerations": int(total["total"]) if total else 0,
            "daily": [{"date": r["date"], "count": r["count"]} for r in daily],
        }

    async def get_session(self, session_id: str) -> Optional[dict]:
        row = await self.fetchone(
            "SELECT context_json, updated_at FROM sessions WHERE session_id=?",
            (session_id,),
        )
        if not row:
            return None
        return {"context": json.loads(row["context_json"] or "{}"), "updated_at": row["updated_at"]}

    async def save_session(self, session_id: str, context: dict) -> None:
        await self.execute(
            "INSERT INTO sessions(session_id, context_json, updated_at) VALUES (?,?,?) "
            "ON CONFLICT(session_id) DO UPDATE SET context_json=excluded.context_json, updated_at=excluded.updated_at",
            (session_id, json.dumps(context), utc_now()),
        )

    async def delete_session(self, session_id: str) -> None:
        await self.execute("DELETE FROM sessions WHERE session_id=?", (session_id,))
