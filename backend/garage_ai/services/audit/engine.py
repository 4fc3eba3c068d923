"""
Deterministic quote audit.

Runs a fixed list of structural rules over the quote lines and returns
findings, each with an optional machine-applicable fix. No model is called
and nothing is persisted; the same lines always yield the same findings
(only the finding ids differ between runs).

Rules, in emission order:
1. duplicate lines
2. part needing labor without any labor line
3. oil change without an oil filter
4. brake pads without a safety inspection (informational)

Keywords cover the French wording used in garages and its English equivalent.
"""
import secrets
import time
from typing import Iterable, List, Optional, Sequence

from garage_ai.core.logging import get_logger
from garage_ai.models.quote import (
    AddLineFix,
    AddLinePayload,
    AuditLineInput,
    Finding,
    QuoteLine,
    RemoveLineFix,
    RemoveLinePayload,
    normalize_line_type,
)

logger = get_logger(__name__)

BRAKE_PAD_KEYWORDS = ("plaquette", "brake pad")
ENGINE_OIL_KEYWORDS = ("huile moteur", "engine oil", "motor oil")
OIL_CHANGE_KEYWORDS = ("vidange", "oil change")
FILTER_KEYWORDS = ("filtre", "filter")
INSPECTION_KEYWORDS = ("contrôle", "controle", "visuel", "inspection", "visual")

# High-frequency part categories: two lines of the same type in the same
# category are reported as duplicates even when worded differently.
DUPLICATE_CATEGORIES = (BRAKE_PAD_KEYWORDS, ENGINE_OIL_KEYWORDS)

LABOR_IMPLYING_KEYWORDS = (
    BRAKE_PAD_KEYWORDS
    + ("disque", "disc")
    + FILTER_KEYWORDS
    + OIL_CHANGE_KEYWORDS
    + ("frein", "brake")
)

OIL_FILTER_REFERENCE_PRICE = 15.0
SAFETY_CHECK_HOURS = 0.25
DUPLICATE_EXCERPT_LENGTH = 40


def generate_finding_id() -> str:
    """Unique per call: epoch milliseconds plus a random suffix."""
    return f"finding-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _description(line: AuditLineInput) -> str:
    return (line.description or "").lower()


def _mentions(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _same_category(a: str, b: str) -> bool:
    return any(_mentions(a, category) and _mentions(b, category) for category in DUPLICATE_CATEGORIES)


def _is_duplicate(first: AuditLineInput, second: AuditLineInput) -> bool:
    a = _description(first)
    b = _description(second)
    if not a or not b:
        return False
    if a == b:
        return True
    return _same_category(a, b) and normalize_line_type(first.type) == normalize_line_type(second.type)


def _duplicate_findings(lines: Sequence[AuditLineInput]) -> List[Finding]:
    findings: List[Finding] = []
    for i in range(len(lines)):
        for j in range(i + 1, len(lines)):
            if not _is_duplicate(lines[i], lines[j]):
                continue
            # Only the first duplicate of line i is reported.
            if lines[j].id:
                excerpt = (lines[i].description or "")[:DUPLICATE_EXCERPT_LENGTH]
                findings.append(
                    Finding(
                        id=generate_finding_id(),
                        severity="warn",
                        title="Duplicate line detected",
                        explanation=f"“{excerpt}” appears twice on the quote.",
                        proposed_fix=RemoveLineFix(
                            payload=RemoveLinePayload(lineId=lines[j].id)
                        ),
                    )
                )
            break
    return findings


def _part_without_labor_finding(
    lines: Sequence[AuditLineInput], labor_rate: float
) -> Optional[Finding]:
    has_labor = any(normalize_line_type(line.type) == "labor" for line in lines)
    if has_labor:
        return None

    needs_labor = any(
        normalize_line_type(line.type) == "part"
        and _mentions(_description(line), LABOR_IMPLYING_KEYWORDS)
        for line in lines
    )
    if not needs_labor:
        return None

    return Finding(
        id=generate_finding_id(),
        severity="warn",
        title="Part without associated labor",
        explanation="Some parts require mechanical work. Add a labor line.",
        proposed_fix=AddLineFix(
            payload=AddLinePayload(
                line=QuoteLine(
                    description="Labor",
                    quantity=1,
                    unit_price=labor_rate,
                    total=labor_rate,
                    type="labor",
                )
            )
        ),
    )


def _oil_change_without_filter_finding(lines: Sequence[AuditLineInput]) -> Optional[Finding]:
    descriptions = [_description(line) for line in lines]
    has_oil_change = any(_mentions(d, OIL_CHANGE_KEYWORDS) for d in descriptions)
    has_filter = any(_mentions(d, FILTER_KEYWORDS) for d in descriptions)
    if not has_oil_change or has_filter:
        return None

    return Finding(
        id=generate_finding_id(),
        severity="warn",
        title="Oil change without filter",
        explanation="An oil change usually requires replacing the oil filter.",
        proposed_fix=AddLineFix(
            payload=AddLinePayload(
                line=QuoteLine(
                    description="Oil filter",
                    quantity=1,
                    unit_price=OIL_FILTER_REFERENCE_PRICE,
                    total=OIL_FILTER_REFERENCE_PRICE,
                    type="part",
                )
            )
        ),
    )


def _incomplete_safety_check_finding(lines: Sequence[AuditLineInput]) -> Optional[Finding]:
    descriptions = [_description(line) for line in lines]
    has_brake_pads = any(_mentions(d, BRAKE_PAD_KEYWORDS) for d in descriptions)
    has_inspection = any(_mentions(d, INSPECTION_KEYWORDS) for d in descriptions)
    if not has_brake_pads or has_inspection:
        return None

    return Finding(
        id=generate_finding_id(),
        severity="info",
        title="Incomplete intervention",
        explanation="A visual safety inspection can be added after replacing the brake pads.",
        proposed_fix=AddLineFix(
            payload=AddLinePayload(
                line=QuoteLine(
                    description="Visual safety inspection",
                    quantity=SAFETY_CHECK_HOURS,
                    unit_price=0,
                    total=0,
                    type="labor",
                    optional=True,
                    optional_reason="Included at no extra cost",
                )
            )
        ),
    )


def audit(lines: Sequence[AuditLineInput], labor_rate: float) -> List[Finding]:
    """
    Audit quote lines.

    Args:
        lines: Quote lines, in editor order
        labor_rate: Hourly rate used for a proposed labor line

    Returns:
        Findings in rule order; a quote can trigger several rules.
    """
    findings: List[Finding] = []
    findings.extend(_duplicate_findings(lines))

    for finding in (
        _part_without_labor_finding(lines, labor_rate),
        _oil_change_without_filter_finding(lines),
        _incomplete_safety_check_finding(lines),
    ):
        if finding is not None:
            findings.append(finding)

    logger.debug(
        "quote_audit_completed",
        line_count=len(lines),
        finding_count=len(findings),
    )
    return findings
