"""
Quote line and audit finding models.

Field names follow the quote editor's line shape (snake_case line fields,
camelCase ``proposedFix`` on findings) so the front-end can apply fixes
without translation.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

LineType = Literal["part", "labor", "forfait"]
Severity = Literal["warn", "info"]


def normalize_line_type(value: Optional[str]) -> LineType:
    """Anything that is not labor or forfait is treated as a part."""
    if value in ("labor", "forfait"):
        return value  # type: ignore[return-value]
    return "part"


# editor lines may carry any type string; they are read as one of LineType
EditorLineType = Annotated[LineType, BeforeValidator(normalize_line_type)]


class AuditLineInput(BaseModel):
    """Loosely-typed quote line as sent by the editor; every field optional."""

    id: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total: Optional[float] = None
    type: Optional[str] = None
    optional: Optional[bool] = None
    optional_reason: Optional[str] = None


class QuoteLine(BaseModel):
    """Complete quote line, as produced by ADD_LINE or by applying fixes."""

    id: Optional[str] = None
    description: str
    quantity: float
    unit_price: float
    total: Optional[float] = None
    type: EditorLineType = "part"
    optional: Optional[bool] = None
    optional_reason: Optional[str] = None


class AddLinePayload(BaseModel):
    line: QuoteLine


class UpdateLinePayload(BaseModel):
    lineId: str
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    type: Optional[EditorLineType] = None


class RemoveLinePayload(BaseModel):
    lineId: str


class MarkOptionalPayload(BaseModel):
    lineId: str
    optional_reason: Optional[str] = None


class AddLineFix(BaseModel):
    action: Literal["ADD_LINE"] = "ADD_LINE"
    payload: AddLinePayload


class UpdateLineFix(BaseModel):
    action: Literal["UPDATE_LINE"] = "UPDATE_LINE"
    payload: UpdateLinePayload


class RemoveLineFix(BaseModel):
    action: Literal["REMOVE_LINE"] = "REMOVE_LINE"
    payload: RemoveLinePayload


class MarkOptionalFix(BaseModel):
    action: Literal["MARK_OPTIONAL"] = "MARK_OPTIONAL"
    payload: MarkOptionalPayload


ProposedFix = Annotated[
    Union[AddLineFix, UpdateLineFix, RemoveLineFix, MarkOptionalFix],
    Field(discriminator="action"),
]


class Finding(BaseModel):
    """One issue detected by the quote audit."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    severity: Severity
    title: str
    explanation: str
    proposed_fix: Optional[ProposedFix] = Field(default=None, alias="proposedFix")

    def content_key(self) -> tuple:
        """Everything but the id, for comparing two audits of the same quote."""
        fix = self.proposed_fix.model_dump() if self.proposed_fix else None
        return (self.severity, self.title, self.explanation, repr(fix))
