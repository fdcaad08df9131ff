import json

import pytest

from pagegen.llm import ProviderError
from pagegen.schemas import ExecutionPlan, StepResult
from pagegen.validator import local_verdict, validate_results
from tests.conftest import CREDENTIALS
from tests.fakes import FakeModelRouter


def plan_with(n_steps, requires_validation=True):
    return ExecutionPlan(
        intent="refresh homepage",
        steps=[{"id": f"s{i}", "description": f"step {i}"} for i in range(1, n_steps + 1)],
        requires_validation=requires_validation,
    )


OK = StepResult(step_id="s1", status="success", result="done", tool_name="list_blocks")
BOOM = StepResult(step_id="s1", status="error", result="boom")


@pytest.mark.asyncio
async def test_skip_when_validation_not_required():
    router = FakeModelRouter()
    verdict = await validate_results(plan_with(3, requires_validation=False), [BOOM], router, CREDENTIALS)
    assert verdict.to_wire() == {"passed": False, "issues": ["Step s1 failed: boom"], "suggestions": []}
    assert router.calls == []


@pytest.mark.asyncio
async def test_skip_for_short_plans_even_when_required():
    router = FakeModelRouter()
    verdict = await validate_results(plan_with(2), [OK], router, CREDENTIALS)
    assert verdict.passed is True
    assert verdict.issues == []
    assert router.calls == []


def test_local_verdict_truncates_long_errors():
    verdict = local_verdict([StepResult(step_id="x", status="error", result="e" * 1000)])
    assert verdict.issues == [f"Step x failed: {'e' * 300}"]


@pytest.mark.asyncio
async def test_model_verdict_is_extracted_from_prose():
    reply = 'Here you go:\n{"passed": false, "issues": ["s2 incomplete"], "suggestions": ["retry s2"]}\nThanks'
    router = FakeModelRouter({"reasoning": reply})
    results = [OK, StepResult(step_id="s2", status="success", result="r" * 500), StepResult(step_id="s3", status="success", result="ok")]
    verdict = await validate_results(plan_with(3), results, router, CREDENTIALS)

    assert verdict.passed is False
    assert verdict.issues == ["s2 incomplete"]
    assert verdict.suggestions == ["retry s2"]
    call = router.calls_for("reasoning")[0]
    assert "You validate AI execution results" in call["system"]
    assert call["user"].startswith("Plan:\nIntent: refresh homepage\nSteps: s1: step 1\ns2: step 2\ns3: step 3")
    assert "Step s1 (list_blocks): success - done" in call["user"]
    assert "Step s3 (reasoning): success - ok" in call["user"]
    assert "r" * 301 not in call["user"]


@pytest.mark.asyncio
async def test_non_list_issues_are_dropped():
    router = FakeModelRouter({"reasoning": json.dumps({"passed": True, "issues": "none", "suggestions": None})})
    verdict = await validate_results(plan_with(3), [OK], router, CREDENTIALS)
    assert verdict.to_wire() == {"passed": True, "issues": [], "suggestions": []}


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["no json here", "{not valid}", json.dumps({"passed": "perhaps"})])
async def test_unparsable_verdict_falls_back_to_step_statuses(reply):
    router = FakeModelRouter({"reasoning": reply})
    verdict = await validate_results(plan_with(3), [OK, BOOM], router, CREDENTIALS)
    assert verdict.passed is False
    assert verdict.issues == ["Step s1 failed: boom"]


@pytest.mark.asyncio
async def test_provider_error_falls_back():
    router = FakeModelRouter(errors={"reasoning": ProviderError("anthropic", 500)})
    verdict = await validate_results(plan_with(3), [OK], router, CREDENTIALS)
    assert verdict.passed is True
    assert verdict.issues == []
