"""
Pydantic result shapes for every generation feature.

These models are the only gate between untrusted provider text and typed
application data: unknown extra fields are tolerated, but a missing required
field, a wrong type, an unknown enum value or an out-of-bounds array rejects
the whole payload.
"""
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError, model_validator


class ShapeModel(BaseModel):
    """Base for result shapes: extra keys are ignored, never an error."""

    model_config = ConfigDict(extra="ignore")


class ClientMessageOutput(ShapeModel):
    """
    Email + SMS drafted for a garage customer.

    {"subject": "...", "body": "...", "sms": "..."}
    """

    subject: str
    body: str
    sms: str


class FaqItem(ShapeModel):
    q: str
    a: str


class QuoteExplainOutput(ShapeModel):
    """Customer-facing explanation of a quote."""

    short: str = Field(..., min_length=1)
    detailed: List[str] = Field(..., min_length=1)
    faq: List[FaqItem] = Field(..., min_length=1)


class InsightItem(ShapeModel):
    title: str
    why: str
    impact: str
    action: str


class InsightsOutput(ShapeModel):
    """At most three business recommendations."""

    insights: List[InsightItem] = Field(..., max_length=3)


SlotLabel = Literal["matin", "apres_midi"]
DailyLoadLevel = Literal["faible", "moyenne", "forte"]


class RecommendedSlot(ShapeModel):
    date: str
    slotLabel: SlotLabel


class PlanningSuggestOutput(ShapeModel):
    """
    One recommended slot plus the resulting load of each day of the week.

    {"recommendedSlot": {"date": "2026-10-19", "slotLabel": "matin"},
     "dailyLoad": {"2026-10-19": "moyenne", ...}}
    """

    recommendedSlot: RecommendedSlot
    dailyLoad: Dict[str, DailyLoadLevel]


class SuggestedQuoteLine(ShapeModel):
    description: str
    quantity: float = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    type: Literal["labor", "part", "forfait"]


class QuickNoteQuoteLines(ShapeModel):
    kind: Literal["quote_lines"]
    lines: List[SuggestedQuoteLine] = Field(..., min_length=1)


class QuickNoteTask(ShapeModel):
    kind: Literal["task"]
    title: str = Field(..., min_length=1)


class QuickNoteOutput(RootModel):
    """A quick note becomes either quote lines or a task, keyed on ``kind``."""

    root: Annotated[Union[QuickNoteQuoteLines, QuickNoteTask], Field(discriminator="kind")]


GeneratedLineType = Literal["piece", "main_oeuvre", "forfait"]
GeneratedLineUnit = Literal["unite", "heure"]


class GeneratedQuoteLine(ShapeModel):
    """
    One drafted quote line.

    Labor is counted in hours, parts and flat rates in units; an included
    line (shown on the quote, not billed) carries a zero price.
    """

    type: GeneratedLineType
    description: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    unit: GeneratedLineUnit
    unit_price_ht: float = Field(..., ge=0)
    isOption: bool = False
    isIncluded: bool = False

    @model_validator(mode="after")
    def _check_consistency(self) -> "GeneratedQuoteLine":
        if self.isIncluded and self.unit_price_ht != 0:
            raise ValueError("an included line must have a zero price")
        expected = "heure" if self.type == "main_oeuvre" else "unite"
        if self.unit != expected:
            raise ValueError(f"{self.type} lines are counted in {expected}")
        return self

    @property
    def total_ht(self) -> float:
        return self.quantity * self.unit_price_ht


class GenerateQuoteLinesOutput(ShapeModel):
    lines: List[GeneratedQuoteLine] = Field(..., min_length=1)


class CopilotAction(ShapeModel):
    label: str
    href: str


class CopilotOutput(ShapeModel):
    answer: str
    actions: List[CopilotAction]


SHAPES: Dict[str, Type[BaseModel]] = {
    "client_message": ClientMessageOutput,
    "quote_explain": QuoteExplainOutput,
    "insights": InsightsOutput,
    "planning_suggest": PlanningSuggestOutput,
    "quick_note": QuickNoteOutput,
    "copilot": CopilotOutput,
    "generate_quote_lines": GenerateQuoteLinesOutput,
}

T = TypeVar("T")


@dataclass
class ValidationResult(Generic[T]):
    """Outcome of validating one decoded payload."""

    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None


def validate(shape_name: str, raw: Any) -> ValidationResult:
    """
    Validate a decoded payload against a named shape.

    Never raises for bad payloads; unknown shape names are a programming error
    and raise KeyError.
    """
    model = SHAPES[shape_name]
    try:
        data = model.model_validate(raw)
    except ValidationError as exc:
        return ValidationResult(ok=False, error=f"{exc.error_count()} validation error(s)")
    if isinstance(data, RootModel):
        data = data.root
    return ValidationResult(ok=True, data=data)


def shape_validator(shape_name: str):
    """Bind a shape name, for use as the orchestrator's ``validate`` callable."""
    if shape_name not in SHAPES:
        raise KeyError(f"Unknown result shape: {shape_name}")

    def _validate(raw: Any) -> ValidationResult:
        return validate(shape_name, raw)

    _validate.shape_name = shape_name  # type: ignore[attr-defined]
    return _validate
