import json

import pytest

from pagegen.tools import ToolContext, ToolRegistry, UnknownToolError


@pytest.mark.asyncio
async def test_builtin_tool_names():
    registry = ToolRegistry()
    assert registry.names() == [
        "get_action_history",
        "get_brand_voice",
        "get_value_scores",
        "list_blocks",
        "render_block",
        "search_content",
    ]
    assert all(entry["description"] for entry in registry.describe())
    assert ToolRegistry(include_builtins=False).names() == []


@pytest.mark.asyncio
async def test_custom_tools_results_are_serialized():
    registry = ToolRegistry(include_builtins=False)

    async def echo(tool_input, ctx):
        return {"project": ctx.project_id, **tool_input}

    registry.register("echo", echo, "Echo input")
    result = await registry.execute("echo", {"x": 1}, ToolContext(project_id="p1"))
    assert json.loads(result) == {"project": "p1", "x": 1}

    with pytest.raises(UnknownToolError):
        await registry.execute("missing", None, ToolContext(project_id="p1"))


@pytest.mark.asyncio
async def test_render_block_tool_accepts_plain_text_and_requires_type():
    registry = ToolRegistry()
    ctx = ToolContext(project_id="p1")
    html = await registry.execute("render_block", {"blockType": "promo", "content": "Half price"}, ctx)
    assert '<div class="promo">' in html
    assert "Half price" in html
    with pytest.raises(ValueError):
        await registry.execute("render_block", {"content": "{}"}, ctx)


@pytest.mark.asyncio
async def test_project_data_tools(db):
    registry = ToolRegistry()
    ctx = ToolContext(project_id="p1", db=db)
    assert "No brand profile" in await registry.execute("get_brand_voice", {}, ctx)

    await db.set_brand_profile("p1", {"tone": "calm"})
    await db.set_value_score("p1", "cards", 0.4)
    await db.log_action("p1", "ai_generate", "Generated 1 blocks", {"query": "q"}, {"blocks": 1})

    assert await registry.execute("get_brand_voice", {}, ctx) == "Tone: calm."
    assert json.loads(await registry.execute("get_value_scores", {}, ctx)) == {"cards": 0.4}
    history = json.loads(await registry.execute("get_action_history", {"limit": 5}, ctx))
    assert history[0]["input"] == {"query": "q"}


@pytest.mark.asyncio
async def test_data_tools_without_database():
    registry = ToolRegistry()
    ctx = ToolContext(project_id="p1")
    assert json.loads(await registry.execute("search_content", {"query": "blender"}, ctx)) == {"results": []}
    assert json.loads(await registry.execute("get_action_history", {}, ctx)) == []
    assert len(json.loads(await registry.execute("list_blocks", {}, ctx))) == 8
