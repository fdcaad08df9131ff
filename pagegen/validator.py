import logging
from typing import List, Mapping

from pydantic import ValidationError

from .llm import ModelRouter, ProviderError
from .parsing import extract_json_object
from .schemas import ExecutionPlan, StepResult, ValidationVerdict


logger = logging.getLogger("uvicorn.error")

VALIDATOR_SYSTEM = (
    "You validate AI execution results. Return a JSON object with: passed (boolean), "
    "issues (string array of problems found), suggestions (string array of improvements). Be concise."
)
RESULT_CHARS = 300


def local_verdict(results: List[StepResult]) -> ValidationVerdict:
    errors = [r for r in results if r.status == "error"]
    return ValidationVerdict(
        passed=not errors,
        issues=[f"Step {r.step_id} failed: {r.result[:RESULT_CHARS]}" for r in errors],
        suggestions=[],
    )


def needs_model_validation(plan: ExecutionPlan) -> bool:
    return plan.requires_validation and len(plan.steps) > 2


def build_validation_prompt(plan: ExecutionPlan, results: List[StepResult]) -> str:
    plan_summary = f"Intent: {plan.intent}\nSteps: " + "\n".join(f"{s.id}: {s.description}" for s in plan.steps)
    results_summary = "\n".join(
        f"Step {r.step_id} ({r.tool_name or 'reasoning'}): {r.status} - {r.result[:RESULT_CHARS]}" for r in results
    )
    return (
        f"Plan:\n{plan_summary}\n\nResults:\n{results_summary}\n\n"
        "Check for: errors, incomplete actions, inconsistencies. Return JSON."
    )


async def validate_results(
    plan: ExecutionPlan,
    results: List[StepResult],
    router: ModelRouter,
    credentials: Mapping[str, str],
) -> ValidationVerdict:
    if not needs_model_validation(plan):
        return local_verdict(results)

    messages = [
        {"role": "system", "content": VALIDATOR_SYSTEM},
        {"role": "user", "content": build_validation_prompt(plan, results)},
    ]
    try:
        response = await router.call("reasoning", messages, credentials)
    except ProviderError as exc:
        logger.warning("Validation call failed; using local verdict: %s", exc)
        return local_verdict(results)

    data = extract_json_object(response.content)
    if data is None:
        logger.warning("Validation response unparsable; using local verdict")
        return local_verdict(results)
    if data.get("passed") is None:
        data.pop("passed", None)
    try:
        return ValidationVerdict.model_validate(data)
    except ValidationError:
        logger.warning("Validation response had the wrong shape; using local verdict")
        return local_verdict(results)
