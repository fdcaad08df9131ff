import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .blocks import build_block_html
from .catalog import get_block_catalog, get_brand_voice, get_value_scores
from .context import query_terms
from .db import Database


@dataclass
class ToolContext:
    project_id: str
    db: Optional[Database] = None
    user_id: str = "system"


ToolFn = Callable[[Dict[str, Any], ToolContext], Awaitable[str]]


class UnknownToolError(LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


async def list_blocks(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    catalog = await get_block_catalog(ctx.db, ctx.project_id)
    return json.dumps([entry.to_wire() for entry in catalog], indent=2)


async def render_block(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    block_type = str(tool_input.get("blockType") or tool_input.get("block_type") or "").strip()
    if not block_type:
        raise ValueError("render_block requires blockType")
    content = tool_input.get("content")
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError:
            content = {"text": content}
    return build_block_html(block_type, content)


async def search_content(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    if ctx.db is None:
        return json.dumps({"results": []})
    terms = query_terms(str(tool_input.get("query") or ""))
    if not terms:
        return json.dumps({"results": []})
    matches = await ctx.db.search_content(ctx.project_id, terms, limit=10)
    results = [
        {"path": m["path"], "title": m["title"], "snippet": (m["body"] or "")[:200]}
        for m in matches
    ]
    return json.dumps({"results": results}, indent=2)


async def brand_voice(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    voice = await get_brand_voice(ctx.db, ctx.project_id)
    if not voice:
        return json.dumps({"message": "No brand profile configured for this project."})
    return voice


async def value_scores(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    return json.dumps(await get_value_scores(ctx.db, ctx.project_id), indent=2)


async def action_history(tool_input: Dict[str, Any], ctx: ToolContext) -> str:
    if ctx.db is None:
        return json.dumps([])
    limit = int(tool_input.get("limit") or 10)
    return json.dumps(await ctx.db.list_actions(ctx.project_id, limit=limit), indent=2)


class ToolRegistry:
    """Named async tools a plan step can invoke."""

    def __init__(self, include_builtins: bool = True) -> None:
        self._tools: Dict[str, ToolFn] = {}
        self._descriptions: Dict[str, str] = {}
        if include_builtins:
            self.register("list_blocks", list_blocks, "List the project's block catalog as JSON.")
            self.register("render_block", render_block, "Render block content JSON into block markup.")
            self.register("search_content", search_content, "Keyword search over the project's indexed content.")
            self.register("get_brand_voice", brand_voice, "Return the project's brand voice guidance.")
            self.register("get_value_scores", value_scores, "Average value score per block.")
            self.register("get_action_history", action_history, "Recent generation history for the project.")

    def register(self, name: str, fn: ToolFn, description: str = "") -> None:
        self._tools[name] = fn
        self._descriptions[name] = description

    def names(self) -> List[str]:
        return sorted(self._tools)

    def describe(self) -> List[Dict[str, str]]:
        return [{"name": name, "description": self._descriptions.get(name, "")} for name in self.names()]

    async def execute(self, name: str, tool_input: Optional[Dict[str, Any]], context: ToolContext) -> str:
        fn = self._tools.get(name)
        if fn is None:
            raise UnknownToolError(name)
        result = await fn(dict(tool_input or {}), context)
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)
