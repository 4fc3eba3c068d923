"""
Apply audit fixes to a list of quote lines.

Nothing is persisted: the caller gets a new list back and the user saves the
quote from the editor.
"""
import uuid
from typing import List, Optional, Sequence

from garage_ai.models.quote import (
    AddLineFix,
    Finding,
    MarkOptionalFix,
    QuoteLine,
    RemoveLineFix,
    UpdateLineFix,
    normalize_line_type,
)

DEFAULT_OPTIONAL_REASON = "Recommended option"


def compute_line_total(line_type: str, quantity: float, unit_price: float) -> float:
    """Forfait lines are billed once whatever the quantity."""
    if line_type == "forfait":
        return round(unit_price, 2)
    return round(quantity * unit_price, 2)


def _index_of(lines: Sequence[QuoteLine], line_id: Optional[str]) -> int:
    for index, line in enumerate(lines):
        if line.id == line_id:
            return index
    return -1


def apply_finding(finding: Finding, lines: Sequence[QuoteLine]) -> List[QuoteLine]:
    """Return a copy of ``lines`` with the finding's fix applied."""
    fix = finding.proposed_fix
    current = list(lines)

    if fix is None:
        return current

    if isinstance(fix, AddLineFix):
        proposed = fix.payload.line
        line_type = normalize_line_type(proposed.type)
        quantity = 1 if line_type == "forfait" else proposed.quantity
        total = proposed.total
        if total is None:
            total = compute_line_total(line_type, quantity, proposed.unit_price)
        current.append(
            proposed.model_copy(
                update={
                    "id": proposed.id or str(uuid.uuid4()),
                    "type": line_type,
                    "quantity": quantity,
                    "total": total,
                }
            )
        )
        return current

    if isinstance(fix, UpdateLineFix):
        index = _index_of(current, fix.payload.lineId)
        if index < 0:
            return current
        previous = current[index]
        line_type = normalize_line_type(fix.payload.type or previous.type)
        quantity = fix.payload.quantity if fix.payload.quantity is not None else previous.quantity
        unit_price = (
            fix.payload.unit_price if fix.payload.unit_price is not None else previous.unit_price
        )
        if line_type == "forfait":
            quantity = 1
        current[index] = previous.model_copy(
            update={
                "type": line_type,
                "quantity": quantity,
                "unit_price": unit_price,
                "total": compute_line_total(line_type, quantity, unit_price),
                "description": fix.payload.description or previous.description,
            }
        )
        return current

    if isinstance(fix, RemoveLineFix):
        return [line for line in current if line.id != fix.payload.lineId]

    if isinstance(fix, MarkOptionalFix):
        reason = fix.payload.optional_reason or DEFAULT_OPTIONAL_REASON
        return [
            line.model_copy(update={"optional": True, "optional_reason": reason})
            if line.id == fix.payload.lineId
            else line
            for line in current
        ]

    return current


def apply_all_findings(findings: Sequence[Finding], lines: Sequence[QuoteLine]) -> List[QuoteLine]:
    """Apply fixes in order; line ids stay valid because each step works on a copy."""
    result = list(lines)
    for finding in findings:
        result = apply_finding(finding, result)
    return result
