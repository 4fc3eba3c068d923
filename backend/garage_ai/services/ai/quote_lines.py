"""
Clean-up of drafted quote lines before they reach the editor.

Models tend to split one job into micro-lines, repeat the same part and list
every free check as its own zero-priced line. The pass below:

1. drops lines whose description is empty or only a number/duration
2. merges near-identical lines (same type, unit and price)
3. folds included zero-priced lines into the main labor line, or into a
   single "Contrôles & sécurité (Inclus)" line
4. orders lines: parts, labor, flat rates, options, included
5. rounds labor durations to 0.05 h with a 0.25 h minimum

Steps 1-4 must keep the quote total to the cent; otherwise the model's lines
are returned untouched. Same if the result no longer fits the line shape.
"""
import math
import re
import unicodedata
from typing import List, Sequence

from pydantic import ValidationError

from garage_ai.core.logging import get_logger
from garage_ai.services.ai.schema import GeneratedQuoteLine, GenerateQuoteLinesOutput

logger = get_logger(__name__)

SIMILARITY_THRESHOLD = 0.75
PRICE_TOLERANCE = 0.05
TOTAL_TOLERANCE = 0.01
MIN_LABOR_HOURS = 0.25
LABOR_STEP_HOURS = 0.05
MAIN_LABOR_MIN_HOURS = 0.5
MAX_LISTED_CHECKS = 3

INCLUDED_GROUP_LABEL = "Contrôles & sécurité (Inclus)"

_NUMERIC_ONLY = re.compile(r"^\d+(?:[.,]\d+)?\s*h?$", re.IGNORECASE)

# pairs of keywords that identify the same part despite different wording
_SAME_PART_KEYWORDS = (
    ("plaquette", "frein"),
    ("huile moteur",),
    ("filtre", "huile"),
    ("disque", "frein"),
)


def normalize_for_comparison(text: str) -> str:
    """Lowercase, accents and punctuation stripped, single spaces."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(re.sub(r"[^\w\s]", " ", stripped).split())


def similarity(first: str, second: str) -> float:
    """Share of common words between two descriptions, from 0 to 1."""
    a, b = normalize_for_comparison(first), normalize_for_comparison(second)
    if a == b:
        return 1.0
    words_a, words_b = set(a.split()), set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _same_part(first: str, second: str) -> bool:
    a, b = first.lower(), second.lower()
    return any(
        all(keyword in a and keyword in b for keyword in keywords)
        for keywords in _SAME_PART_KEYWORDS
    )


def _prices_close(first: float, second: float) -> bool:
    diff = abs(first - second)
    return diff < TOTAL_TOLERANCE or (first > 0 and diff / first < PRICE_TOLERANCE)


def _is_duplicate(line: GeneratedQuoteLine, other: GeneratedQuoteLine) -> bool:
    if line.isOption or other.isOption:
        return False
    if line.type != other.type or line.unit != other.unit:
        return False
    if not _prices_close(line.unit_price_ht, other.unit_price_ht):
        return False
    return (
        similarity(line.description, other.description) > SIMILARITY_THRESHOLD
        or _same_part(line.description, other.description)
    )


def drop_empty_lines(lines: Sequence[GeneratedQuoteLine]) -> List[GeneratedQuoteLine]:
    kept = []
    for line in lines:
        description = line.description.strip()
        if description and not _NUMERIC_ONLY.match(description):
            kept.append(line)
    return kept


def deduplicate(lines: Sequence[GeneratedQuoteLine]) -> List[GeneratedQuoteLine]:
    """
    Merge near-identical lines into the first one.

    Quantities are summed, the longest description is kept and the unit
    price becomes the quantity-weighted average.
    """
    result: List[GeneratedQuoteLine] = []
    merged_indexes = set()
    for i, line in enumerate(lines):
        if i in merged_indexes:
            continue
        group = [line]
        for j in range(i + 1, len(lines)):
            if j not in merged_indexes and _is_duplicate(line, lines[j]):
                group.append(lines[j])
                merged_indexes.add(j)
        if len(group) == 1:
            result.append(line)
            continue
        quantity = sum(item.quantity for item in group)
        total = sum(item.total_ht for item in group)
        result.append(
            line.model_copy(
                update={
                    "quantity": quantity,
                    "description": max((item.description for item in group), key=len),
                    "unit_price_ht": round(total / quantity, 2),
                }
            )
        )
    return result


def _is_main_labor(line: GeneratedQuoteLine) -> bool:
    return (
        line.type == "main_oeuvre"
        and not line.isOption
        and not line.isIncluded
        and line.quantity >= MAIN_LABOR_MIN_HOURS
        and "inclus" not in line.description.lower()
    )


def group_included(lines: Sequence[GeneratedQuoteLine]) -> List[GeneratedQuoteLine]:
    """Fold zero-priced included lines into the main labor line or one grouped line."""
    included = [line for line in lines if line.isIncluded and line.unit_price_ht == 0]
    if not included:
        return list(lines)
    others = [line for line in lines if not (line.isIncluded and line.unit_price_ht == 0)]

    descriptions: List[str] = []
    for line in included:
        description = line.description.strip()
        if description and description not in descriptions:
            descriptions.append(description)
    if not descriptions:
        return others

    for index, line in enumerate(others):
        if _is_main_labor(line):
            others[index] = line.model_copy(
                update={"description": f"{line.description} — {', '.join(descriptions)} inclus"}
            )
            return others

    if len(included) == 1:
        return others + included

    listed = ", ".join(descriptions[:MAX_LISTED_CHECKS])
    if len(descriptions) > MAX_LISTED_CHECKS:
        listed = f"{listed} et autres contrôles"
    grouped = GeneratedQuoteLine(
        type="main_oeuvre",
        description=f"{INCLUDED_GROUP_LABEL} — {listed}",
        quantity=1,
        unit="heure",
        unit_price_ht=0,
        isIncluded=True,
    )
    return others + [grouped]


_TYPE_RANK = {"piece": 0, "main_oeuvre": 1, "forfait": 2}


def _section(line: GeneratedQuoteLine) -> int:
    if line.isIncluded:
        return 4
    if line.isOption:
        return 3
    return _TYPE_RANK[line.type]


def order_lines(lines: Sequence[GeneratedQuoteLine]) -> List[GeneratedQuoteLine]:
    """Stable: lines keep their relative order inside a section."""
    return sorted(lines, key=_section)


def round_labor_duration(hours: float) -> float:
    steps = math.floor(hours / LABOR_STEP_HOURS + 0.5)
    return round(max(MIN_LABOR_HOURS, steps * LABOR_STEP_HOURS), 2)


def round_labor_durations(lines: Sequence[GeneratedQuoteLine]) -> List[GeneratedQuoteLine]:
    return [
        line.model_copy(update={"quantity": round_labor_duration(line.quantity)})
        if line.type == "main_oeuvre" and not line.isIncluded
        else line
        for line in lines
    ]


def quote_total(lines: Sequence[GeneratedQuoteLine]) -> float:
    return sum(line.total_ht for line in lines)


def post_process_lines(data: GenerateQuoteLinesOutput, request=None) -> GenerateQuoteLinesOutput:
    original = list(data.lines)

    processed = drop_empty_lines(original)
    processed = deduplicate(processed)
    processed = group_included(processed)
    processed = order_lines(processed)

    if abs(quote_total(original) - quote_total(processed)) >= TOTAL_TOLERANCE:
        logger.warning(
            "quote_lines_post_process_reverted",
            reason="total_changed",
            original_total=round(quote_total(original), 2),
            processed_total=round(quote_total(processed), 2),
        )
        return data

    processed = round_labor_durations(processed)
    try:
        return GenerateQuoteLinesOutput.model_validate(
            {"lines": [line.model_dump() for line in processed]}
        )
    except ValidationError as exc:
        logger.warning(
            "quote_lines_post_process_reverted",
            reason="invalid_result",
            error_count=exc.error_count(),
        )
        return data
