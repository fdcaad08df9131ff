import json
import types
from typing import Any, Dict, List, Literal, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


JourneyStage = Literal["exploring", "comparing", "deciding", "supporting"]
StepStatus = Literal["success", "error"]


def _clamp_unit(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("confidence must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("confidence must be a number")
    if number != number:
        raise ValueError("confidence must be a number")
    return max(0.0, min(1.0, number))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _as_text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [_as_text(item) for item in value if item is not None]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "protected_namespaces": ()}

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class IntentJudgment(WireModel):
    intent_type: str
    entities: List[str] = Field(default_factory=list)
    journey_stage: JourneyStage
    confidence: float = 0.5

    model_config = {"frozen": True}

    @field_validator("entities", mode="before")
    @classmethod
    def _entities(cls, value: Any) -> List[str]:
        return _as_text_list(value)

    @field_validator("journey_stage", mode="before")
    @classmethod
    def _stage(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _clamp_unit(value)


FALLBACK_INTENT = IntentJudgment(intent_type="general", entities=[], journey_stage="exploring", confidence=0.5)


class QueryHistoryItem(WireModel):
    query: str
    intent_type: str = "general"
    timestamp: float = 0.0


class SessionContext(WireModel):
    previous_queries: List[QueryHistoryItem] = Field(default_factory=list)


class BlockCatalogEntry(WireModel):
    name: str
    category: str = "general"
    when_to_use: str = ""
    data_requirements: List[str] = Field(default_factory=list)
    guardrails: List[str] = Field(default_factory=list)
    value_score: Optional[float] = None


class SelectedBlock(WireModel):
    type: str
    reason: str = ""
    section_style: Optional[str] = None
    data_requirements: Optional[Dict[str, Any]] = None
    priority: int = 1

    @field_validator("data_requirements", mode="before")
    @classmethod
    def _requirements(cls, value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(value, dict):
            return value
        if isinstance(value, (list, tuple)):
            return {"fields": list(value)}
        return None

    @field_validator("reason", mode="before")
    @classmethod
    def _reason(cls, value: Any) -> str:
        return _as_text(value)


class SelectionConfidence(WireModel):
    intent: float = 0.0
    content_match: float = 0.0

    @field_validator("intent", "content_match", mode="before")
    @classmethod
    def _unit(cls, value: Any) -> float:
        return _clamp_unit(value)


class ReasoningResult(WireModel):
    selected_blocks: List[SelectedBlock]
    rationale: str = ""
    confidence: SelectionConfidence = Field(default_factory=SelectionConfidence)
    follow_up_suggestions: Optional[List[str]] = None

    @field_validator("follow_up_suggestions", mode="before")
    @classmethod
    def _suggestions(cls, value: Any) -> Optional[List[str]]:
        if value is None:
            return None
        return _as_text_list(value)


class RenderedBlock(WireModel):
    block_type: str
    markup: str
    section_style: Optional[str] = None
    index: int = 0


# Structured block content. One model per known block type; every field is
# coerced before validation so a wrong-shaped model response still renders.


def _coerce_field(annotation: Any, value: Any) -> Any:
    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is Union or origin is getattr(types, "UnionType", None):
        if value is None:
            return None
        inner = [arg for arg in args if arg is not type(None)]
        return _coerce_field(inner[0], value) if inner else value
    if origin in (list, List):
        item_type = args[0] if args else Any
        if not isinstance(value, (list, tuple)):
            return []
        coerced = []
        for item in value:
            if item is None:
                continue
            if isinstance(item_type, type) and issubclass(item_type, BlockContent) and not isinstance(item, dict):
                continue
            coerced.append(_coerce_field(item_type, item))
        return coerced
    if annotation is str:
        return _as_text(value)
    if isinstance(annotation, type) and issubclass(annotation, BlockContent):
        return value if isinstance(value, dict) else {}
    return value


class BlockContent(WireModel):
    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _tolerate_shape(cls, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return {}
        cleaned: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            if field.alias and field.alias in data:
                raw = data[field.alias]
            elif name in data:
                raw = data[name]
            else:
                continue
            cleaned[name] = _coerce_field(field.annotation, raw)
        return cleaned


class HeroContent(BlockContent):
    headline: str = ""
    subheadline: Optional[str] = None
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None
    image_url: Optional[str] = None
    image_alt: Optional[str] = None


class CardItem(BlockContent):
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None
    image_alt: Optional[str] = None
    link_text: Optional[str] = None
    link_url: Optional[str] = None


class CardsContent(BlockContent):
    cards: List[CardItem] = Field(default_factory=list)


class ColumnItem(BlockContent):
    headline: Optional[str] = None
    text: str = ""


class ColumnsContent(BlockContent):
    columns: List[ColumnItem] = Field(default_factory=list)


class AccordionItem(BlockContent):
    question: str = ""
    answer: str = ""


class AccordionContent(BlockContent):
    items: List[AccordionItem] = Field(default_factory=list)


class TabItem(BlockContent):
    label: str = ""
    content: str = ""


class TabsContent(BlockContent):
    tabs: List[TabItem] = Field(default_factory=list)


class TableContent(BlockContent):
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)


class Testimonial(BlockContent):
    quote: str = ""
    author: str = ""
    role: Optional[str] = None


class TestimonialsContent(BlockContent):
    testimonials: List[Testimonial] = Field(default_factory=list)


class CTAContent(BlockContent):
    headline: str = ""
    text: Optional[str] = None
    button_text: str = ""
    button_url: str = "#"


class GenericContent(BlockContent):
    content: Optional[str] = None
    text: Optional[str] = None
    headline: Optional[str] = None


class PlanStep(WireModel):
    id: str
    description: str = ""
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    depends_on: List[str] = Field(default_factory=list)
    validation: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("depends_on", mode="before")
    @classmethod
    def _depends_on(cls, value: Any) -> List[str]:
        return _as_text_list(value)


class ExecutionPlan(WireModel):
    intent: str = ""
    steps: List[PlanStep] = Field(default_factory=list)
    requires_validation: bool = False

    @model_validator(mode="after")
    def _unique_ids(self) -> "ExecutionPlan":
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id}")
            seen.add(step.id)
        return self


class StepResult(WireModel):
    step_id: str
    status: StepStatus
    result: str = ""
    tool_name: Optional[str] = None


class ValidationVerdict(WireModel):
    passed: bool = True
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @field_validator("issues", "suggestions", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return _as_text_list(value)


class ProgressEvent(BaseModel):
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class GenerateRequest(WireModel):
    query: str
    project_id: str
    session_id: Optional[str] = None
    intent_types: Optional[List[str]] = None
    brand_voice: Optional[str] = None
    hybrid_scaffold: Optional[str] = None


class ExecutePlanRequest(WireModel):
    plan: ExecutionPlan
    project_id: str = ""
    run_validation: bool = Field(default=True, alias="validate")


class RenderRequest(WireModel):
    block_type: str
    content: Any = None
