"""
Caller input records, validated before any prompt is built.

Business entities (quotes, assignments, statistics) are loaded by the product
front-end and passed in; this service never reads them itself.
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from garage_ai.models.quote import AuditLineInput, Finding, QuoteLine

ClientMessageTemplate = Literal[
    "relance_j2",
    "relance_j7",
    "demande_accord",
    "vehicule_pret",
    "demande_infos",
]


class ClientMessageRequest(BaseModel):
    template: ClientMessageTemplate
    clientName: str = Field(..., min_length=1)
    vehicleLabel: Optional[str] = None
    quoteRef: Optional[str] = None
    totalTtc: Optional[float] = None
    validUntil: Optional[str] = None


class QuoteExplainLine(BaseModel):
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total: Optional[float] = None
    type: Optional[str] = None
    optional: Optional[bool] = None
    optional_reason: Optional[str] = None


class QuoteExplainRequest(BaseModel):
    quoteId: str = Field(..., min_length=1)
    lines: List[QuoteExplainLine] = Field(default_factory=list)
    totalHt: float = 0
    totalTva: float = 0
    totalTtc: float = 0
    durationEstimate: Optional[str] = None


class InsightsRequest(BaseModel):
    """Aggregate statistics only; no row-level data is sent to a provider."""

    acceptanceRate: Optional[float] = Field(None, ge=0, le=1)
    acceptedCount: int = Field(0, ge=0)
    sentCount: int = Field(0, ge=0)
    averageBasket: Optional[float] = None
    totalAcceptedTtc: float = 0
    estimatedCa: float = 0
    laborHoursEstimated: Optional[float] = None
    lowMarginItemsCount: Optional[int] = Field(None, ge=0)


class PlanningAssignment(BaseModel):
    date: str
    reference: Optional[str] = None
    quoteId: Optional[str] = None
    durationHours: float = Field(0, ge=0)


def monday_of_week(today: Optional[date] = None) -> date:
    today = today or datetime.now(timezone.utc).date()
    return today - timedelta(days=today.weekday())


class PlanningSuggestRequest(BaseModel):
    quoteId: str = Field(..., min_length=1)
    durationHours: float = Field(..., ge=0)
    # ISO date; defaults to the Monday of the current week, resolved once here
    weekStart: str = Field(default=None, validate_default=True)
    assignments: List[PlanningAssignment] = Field(default_factory=list)

    @field_validator("weekStart", mode="before")
    @classmethod
    def _resolve_week_start(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            return monday_of_week().isoformat()
        value = str(value).strip()
        date.fromisoformat(value)
        return value


class QuickNoteRequest(BaseModel):
    note: str = Field(..., min_length=1)
    entityType: Optional[Literal["client", "vehicle"]] = None
    entityId: Optional[str] = None


class CopilotHistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class CopilotRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[CopilotHistoryMessage] = Field(default_factory=list, max_length=20)
    context: Optional[str] = None


class GenerateQuoteLinesRequest(BaseModel):
    """Free-text description of the work, e.g. "Clio 4, plaquettes avant + vidange"."""

    description: str = Field(..., min_length=1)
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None


class QuoteAuditRequest(BaseModel):
    quoteId: str = Field(..., min_length=1)
    hourlyRate: Optional[float] = Field(None, gt=0)
    lines: List[AuditLineInput] = Field(default_factory=list)


class ApplyFixesRequest(BaseModel):
    """
    Apply one or several audit findings to the editor's lines.

    Findings are applied in the order given.
    """

    lines: List[QuoteLine]
    findings: List[Finding] = Field(..., min_length=1)
