import pytest

from pagegen.events import ProgressEmitter
from pagegen.llm import ProviderError
from pagegen.pipeline import assemble_page, orchestrate
from pagegen.schemas import RenderedBlock
from tests.conftest import CREDENTIALS
from tests.fakes import FakeModelRouter


@pytest.mark.asyncio
async def test_orchestrate_emits_stages_in_order():
    router = FakeModelRouter()
    emitter = ProgressEmitter()
    result = await orchestrate("best blender", "p1", router, CREDENTIALS, emitter)
    emitter.close()
    events = emitter.drain()
    names = [e.event for e in events]

    assert names[:6] == [
        "generation-start",
        "reasoning-start",
        "reasoning-step",
        "reasoning-start",
        "reasoning-step",
        "reasoning-complete",
    ]
    assert names[-1] == "generation-complete"
    assert names.count("block-start") == 3
    assert names.count("block-content") == 3

    assert events[0].data == {"query": "best blender", "estimatedBlocks": 5}
    assert events[1].data == {"stage": "classification"}
    assert events[2].data == {
        "stage": "classification",
        "title": "Intent Classified",
        "content": "discovery (confidence: 0.82)",
    }
    assert events[4].data["title"] == "Blocks Selected"
    assert events[5].data == {"confidence": {"intent": 0.8, "contentMatch": 0.7}}

    done = events[-1].data
    assert done["totalBlocks"] == 3
    assert done["intent"] == "discovery"
    assert done["followUpSuggestions"] == ["Compare top models"]
    assert isinstance(done["duration"], int)

    assert [b.block_type for b in result.blocks] == ["hero", "cards", "cta"]
    assert result.full_html.count("\n<hr>\n") == 2
    assert result.intent.intent_type == "discovery"


@pytest.mark.asyncio
async def test_hybrid_scaffold_zones_are_filled():
    router = FakeModelRouter()
    scaffold = "<main><!-- generative-zone --><footer>x</footer><!--GENERATIVE-ZONE--></main>"
    result = await orchestrate("q", "p1", router, CREDENTIALS, ProgressEmitter(), hybrid_scaffold=scaffold)
    assert "generative-zone" not in result.full_html.lower()
    assert result.full_html.count('<div class="hero">') == 2
    assert result.full_html.startswith("<main>")


def test_assemble_page_without_scaffold_joins_blocks():
    blocks = [RenderedBlock(block_type="a", markup="A"), RenderedBlock(block_type="b", markup="B")]
    assert assemble_page(blocks) == "A\n<hr>\nB"


@pytest.mark.asyncio
async def test_orchestrate_uses_project_data(db):
    await db.add_block("p1", "promo", category="conversion", when_to_use="Seasonal offers")
    await db.set_value_score("p1", "promo", 0.9)
    await db.set_brand_profile("p1", {"tone": "playful", "guidelines": "Short sentences."}, {"guidelines": "No jargon."})
    await db.index_content("p1", "/promo", "Summer promo", "Blender summer sale with discounts")

    router = FakeModelRouter()
    result = await orchestrate("blender summer sale", "p1", router, CREDENTIALS, ProgressEmitter(), db=db)

    reasoning_prompt = router.calls_for("reasoning")[0]["system"]
    assert "- promo (conversion): Seasonal offers (value score: 0.9)" in reasoning_prompt
    assert "- hero (structure)" not in reasoning_prompt
    assert "[Summer promo]: Blender summer sale with discounts" in reasoning_prompt

    content_prompt = router.calls_for("content")[0]["system"]
    assert "Brand voice: Tone: playful. Short sentences. No jargon." in content_prompt

    history = await db.list_actions("p1")
    assert len(history) == 1
    assert history[0]["input"] == {"query": "blender summer sale", "intent": "discovery"}
    assert history[0]["output"]["blocks"] == len(result.blocks)


@pytest.mark.asyncio
async def test_explicit_brand_voice_wins_over_profile(db):
    await db.set_brand_profile("p1", {"tone": "formal"})
    router = FakeModelRouter()
    await orchestrate("q", "p1", router, CREDENTIALS, ProgressEmitter(), db=db, brand_voice="Cheeky")
    assert "Brand voice: Cheeky" in router.calls_for("content")[0]["system"]


@pytest.mark.asyncio
async def test_failing_retriever_is_non_fatal():
    async def broken(query, project_id):
        raise RuntimeError("index offline")

    router = FakeModelRouter()
    result = await orchestrate("q", "p1", router, CREDENTIALS, ProgressEmitter(), retriever=broken)
    assert len(result.blocks) == 3
    assert "Context from content repository:\n\n" in router.calls_for("reasoning")[0]["system"]


@pytest.mark.asyncio
async def test_custom_retriever_context_reaches_prompts():
    async def retriever(query, project_id):
        return f"ctx for {project_id}"

    router = FakeModelRouter()
    await orchestrate("q", "p9", router, CREDENTIALS, ProgressEmitter(), retriever=retriever)
    assert "ctx for p9" in router.calls_for("reasoning")[0]["system"]
    assert router.calls_for("content")[0]["user"].endswith("Context: ctx for p9")


@pytest.mark.asyncio
async def test_unparsable_selection_still_generates_hero():
    router = FakeModelRouter({"reasoning": "no idea"})
    emitter = ProgressEmitter()
    result = await orchestrate("q", "p1", router, CREDENTIALS, emitter)
    assert [b.block_type for b in result.blocks] == ["hero"]
    emitter.close()
    done = [e for e in emitter.drain() if e.event == "generation-complete"][0]
    assert done.data["followUpSuggestions"] == []


@pytest.mark.asyncio
async def test_classification_failure_propagates_without_generation():
    router = FakeModelRouter(errors={"classification": ProviderError("cerebras", 401, "bad key")})
    emitter = ProgressEmitter()
    with pytest.raises(ProviderError):
        await orchestrate("q", "p1", router, CREDENTIALS, emitter)
    emitter.close()
    names = [e.event for e in emitter.drain()]
    assert names == ["generation-start", "reasoning-start"]
    assert router.calls_for("content") == []


@pytest.mark.asyncio
async def test_session_history_shapes_prompts():
    from pagegen.schemas import QueryHistoryItem, SessionContext

    session = SessionContext(previous_queries=[QueryHistoryItem(query="blenders", intent_type="discovery")])
    router = FakeModelRouter()
    await orchestrate("a3500 price", "p1", router, CREDENTIALS, ProgressEmitter(), session=session)
    assert "Previous queries: blenders" in router.calls_for("classification")[0]["system"]
    assert 'User journey: discovery: "blenders"' in router.calls_for("reasoning")[0]["system"]
