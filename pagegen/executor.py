import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .events import ProgressEmitter
from .llm import ModelRouter
from .schemas import ExecutionPlan, PlanStep, StepResult
from .tools import ToolContext, ToolRegistry


logger = logging.getLogger("uvicorn.error")

REASONING_SYSTEM = (
    "You are a reasoning assistant. Analyze the provided context and step description "
    "to produce a helpful response."
)
PRIOR_RESULT_CHARS = 200
EVENT_RESULT_CHARS = 500


@dataclass
class ExecutionReport:
    results: List[StepResult] = field(default_factory=list)
    status: str = "complete"
    iterations: int = 0

    @property
    def failed(self) -> List[StepResult]:
        return [r for r in self.results if r.status == "error"]

    def to_wire(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "iterations": self.iterations,
            "results": [r.to_wire() for r in self.results],
        }


def summarize_prior_results(results: List[StepResult]) -> str:
    return "\n".join(
        f"Step {r.step_id} ({r.tool_name or 'reasoning'}): {r.status} - {r.result[:PRIOR_RESULT_CHARS]}"
        for r in results
    )


async def run_reasoning_step(
    step: PlanStep,
    prior: List[StepResult],
    router: ModelRouter,
    credentials: Mapping[str, str],
) -> str:
    summary = summarize_prior_results(prior)
    messages = [
        {"role": "system", "content": REASONING_SYSTEM},
        {"role": "user", "content": f"Step: {step.description}\n\nPrior step results:\n{summary or 'None yet.'}"},
    ]
    response = await router.call("reasoning", messages, credentials)
    return response.content


def _emit(emitter: Optional[ProgressEmitter], event: str, data: Dict[str, Any]) -> None:
    if emitter is not None:
        emitter.emit(event, data)


async def execute_plan(
    plan: ExecutionPlan,
    tools: ToolRegistry,
    router: ModelRouter,
    credentials: Mapping[str, str],
    emitter: Optional[ProgressEmitter] = None,
    tool_context: Optional[ToolContext] = None,
) -> ExecutionReport:
    """Run plan steps in dependency order.

    A step is ready once every id it depends on has a result, whether that
    result succeeded or failed. When nothing is ready (a cycle, or a dependency
    on an id the plan doesn't contain) the first pending step runs anyway.
    Each step produces exactly one StepResult.
    """
    ctx = tool_context or ToolContext(project_id="")
    pending: List[PlanStep] = list(plan.steps)
    completed: Set[str] = set()
    report = ExecutionReport()
    max_iterations = len(pending) * 2

    while pending and report.iterations < max_iterations:
        report.iterations += 1
        ready = [step for step in pending if all(dep in completed for dep in step.depends_on)]
        forced = False
        if not ready:
            forced = True
            ready = [pending[0]]
            logger.warning("No runnable steps in plan %r; forcing step %s", plan.intent, pending[0].id)

        for step in ready:
            pending.remove(step)
            start_payload: Dict[str, Any] = {
                "stepId": step.id,
                "description": step.description,
                "toolName": step.tool_name,
            }
            if forced:
                start_payload["forced"] = True
            _emit(emitter, "step_start", start_payload)
            try:
                if step.tool_name:
                    tool_input = step.tool_input or {}
                    _emit(emitter, "tool_call", {"stepId": step.id, "toolName": step.tool_name, "input": tool_input})
                    result = await tools.execute(step.tool_name, tool_input, ctx)
                else:
                    result = await run_reasoning_step(step, report.results, router, credentials)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                report.results.append(
                    StepResult(step_id=step.id, status="error", result=message, tool_name=step.tool_name)
                )
                completed.add(step.id)
                _emit(emitter, "step_complete", {"stepId": step.id, "status": "error", "error": message})
                continue
            report.results.append(StepResult(step_id=step.id, status="success", result=result, tool_name=step.tool_name))
            completed.add(step.id)
            _emit(
                emitter,
                "step_complete",
                {"stepId": step.id, "status": "success", "result": result[:EVENT_RESULT_CHARS]},
            )

    if pending:
        # Only reachable if a future change lets an iteration run zero steps.
        logger.error("Iteration limit reached with %d steps pending", len(pending))
        report.status = "incomplete"
        for step in pending:
            message = f"Step {step.id} not executed: iteration limit reached"
            report.results.append(StepResult(step_id=step.id, status="error", result=message, tool_name=step.tool_name))
            _emit(emitter, "step_complete", {"stepId": step.id, "status": "error", "error": message})
    return report
