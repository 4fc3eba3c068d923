"""
Feature definitions: prompt builders and result shapes per generation feature.

Every generation feature runs through the same chain (see
``services.ai.service``); what differs is captured here:

- the system prompt
- a user-prompt builder over the validated input record
- the result shape name
- optional acceptance checks and post-processing that need the input record
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from garage_ai.core.config import get_settings
from garage_ai.models.requests import (
    ClientMessageRequest,
    CopilotRequest,
    GenerateQuoteLinesRequest,
    InsightsRequest,
    PlanningSuggestRequest,
    QuickNoteRequest,
    QuoteExplainRequest,
)
from garage_ai.models.usage import FeatureKey
from garage_ai.services.ai.quote_lines import post_process_lines
from garage_ai.services.ai.schema import (
    CopilotOutput,
    PlanningSuggestOutput,
    ValidationResult,
    validate,
)


@dataclass(frozen=True)
class FeatureDefinition:
    key: FeatureKey
    shape: str
    system_prompt: str
    input_model: Type[BaseModel]
    build_user_prompt: Callable[[Any], str]
    build_system_prompt: Optional[Callable[[Any], str]] = None
    build_history: Optional[Callable[[Any], List[Dict[str, str]]]] = None
    accept: Optional[Callable[[Any, Any], bool]] = None
    post_process: Optional[Callable[[Any, Any], Any]] = None

    def validator(self, request: Any) -> Callable[[Any], ValidationResult]:
        """Shape validation plus the feature's own acceptance check."""

        def _validate(raw: Any) -> ValidationResult:
            result = validate(self.shape, raw)
            if result.ok and self.accept is not None and not self.accept(result.data, request):
                return ValidationResult(ok=False, error="rejected by feature check")
            return result

        _validate.shape_name = self.shape  # type: ignore[attr-defined]
        return _validate

    def system_prompt_for(self, request: Any) -> str:
        if self.build_system_prompt is None:
            return self.system_prompt
        return self.build_system_prompt(request)

    def history(self, request: Any) -> Optional[List[Dict[str, str]]]:
        if self.build_history is None:
            return None
        return self.build_history(request)

    def finalize(self, data: Any, request: Any) -> Any:
        if self.post_process is None:
            return data
        return self.post_process(data, request)


# --- client_message -------------------------------------------------------

CLIENT_MESSAGE_SYSTEM_PROMPT = """You are an automotive professional writing short messages (email and SMS) that a garage sends to its customers.

STRICT RULES:
1. Professional, courteous tone; never aggressive or pushy.
2. GDPR: only include strictly necessary data (name, quote reference, amount when relevant).
3. Reply ONLY with valid JSON with exactly these keys: "subject" (email subject), "body" (short email body), "sms" (short SMS text, no subject).

TEMPLATES:
- relance_j2: courteous reminder 2 days after the quote was sent. Invite the customer to read it and get in touch with any question. No pressure.
- relance_j7: courteous reminder 7 days after. Same tone. Mention the validity date when provided.
- demande_accord: ask the customer to confirm their agreement on the quote. Mention the reference and the total incl. VAT when provided.
- vehicule_pret: announce that the vehicle is ready for pick-up. Courteous and clear.
- demande_infos: ask the customer for additional information, without needless technical detail.

"body" and "sms" must be written in French for a private customer. The SMS stays short (one or two sentences)."""


def build_client_message_prompt(request: ClientMessageRequest) -> str:
    parts = [
        f"Requested template: {request.template}",
        f"Customer name: {request.clientName}",
    ]
    if request.vehicleLabel and request.vehicleLabel.strip():
        parts.append(f"Vehicle: {request.vehicleLabel.strip()}")
    if request.quoteRef and request.quoteRef.strip():
        parts.append(f"Quote reference: {request.quoteRef.strip()}")
    if request.totalTtc is not None:
        parts.append(f"Total incl. VAT: {request.totalTtc} €")
    if request.validUntil and request.validUntil.strip():
        parts.append(f"Quote valid until: {request.validUntil.strip()}")
    parts.append("Return only the JSON (subject, body, sms).")
    return "\n".join(parts)


# --- quote_explain --------------------------------------------------------

QUOTE_EXPLAIN_SYSTEM_PROMPT = """You are an automotive professional helping garages explain a quote to their customer in a simple, reassuring way.
From the quote data (lines, totals, duration) write an explanation in French for a private customer.

STRICT RULES:
1. Professional, simple, human, non-technical tone.
2. NEVER make impossible technical promises: no warranties that are not provided, no firm deadlines without grounds. Stay factual.
3. Reply ONLY with valid JSON with exactly these keys:
   - "short": string (3 to 5 reassuring sentences summarising the quote)
   - "detailed": array of strings (4 to 8 bullet points)
   - "faq": array of {"q": string, "a": string} (3 to 5 short reassuring questions and answers, e.g. "Is VAT included?", "What is optional?")
4. Explain what is included, the total incl. VAT, optional items and duration without inventing anything absent from the quote."""


def build_quote_explain_prompt(request: QuoteExplainRequest) -> str:
    line_texts = []
    for line in request.lines:
        optional = " (optional)" if line.optional else ""
        reason = f" ({line.optional_reason})" if line.optional_reason else ""
        line_texts.append(
            f"- {line.description or ''} | Qty: {line.quantity or 0} | "
            f"Unit price excl. VAT: {line.unit_price or 0} € | Total: {line.total or 0} € | "
            f"Type: {line.type or 'part'}{optional}{reason}"
        )
    parts = [
        "Quote lines:",
        "\n".join(line_texts) if line_texts else "(none)",
        "",
        f"Total excl. VAT: {request.totalHt} € | VAT: {request.totalTva} € | "
        f"Total incl. VAT: {request.totalTtc} €",
    ]
    if request.durationEstimate:
        parts.append(f"Estimated duration: {request.durationEstimate}")
    return "\n".join(parts)


# --- insights -------------------------------------------------------------

INSIGHTS_SYSTEM_PROMPT = """You are a business assistant for the owner of a car repair garage. Your goal is to help them earn more: under-billing, average basket, acceptance rate, estimated labor time.

STRICT RULES:
1. Use ONLY the data in the provided context. NEVER invent figures.
2. If a metric is missing, do not make one up; you may recommend tracking it.
3. Reply strictly in JSON: {"insights": [{"title": "...", "why": "...", "impact": "...", "action": "..."}]}.
4. At most 3 recommendations, each concrete and actionable.
5. title: short title. why: why it matters. impact: business impact. action: concrete next step.
6. Answer in French."""


def build_insights_context(stats: InsightsRequest) -> str:
    parts = []
    if stats.acceptanceRate is not None:
        parts.append(
            f"Acceptance rate: {round(stats.acceptanceRate * 100)} % "
            f"({stats.acceptedCount} accepted / {stats.acceptedCount + stats.sentCount} sent)."
        )
    else:
        parts.append("Acceptance rate: not computable (no quote sent).")
    if stats.averageBasket is not None:
        parts.append(
            f"Average basket (accepted quotes): {stats.averageBasket:.2f} € "
            f"(over {stats.acceptedCount} accepted quotes)."
        )
    else:
        parts.append("Average basket: no accepted quote.")
    parts.append(f"Total accepted revenue: {stats.totalAcceptedTtc:.2f} €.")
    parts.append(
        f"Estimated pipeline (sent, pending quotes): {stats.estimatedCa:.2f} € "
        f"({stats.sentCount} pending quotes)."
    )
    if stats.laborHoursEstimated:
        parts.append(f"Estimated labor hours (accepted quotes): {stats.laborHoursEstimated} h.")
    if stats.lowMarginItemsCount:
        parts.append(
            f"Lines with negative or very low margin (< 5 %): {stats.lowMarginItemsCount}."
        )
    return " ".join(parts)


def build_insights_prompt(stats: InsightsRequest) -> str:
    return (
        f"Garage context (aggregate statistics only):\n{build_insights_context(stats)}\n\n"
        "Generate between 0 and 3 concrete business recommendations from this data. "
        'Reply in JSON only: {"insights": [{"title": "...", "why": "...", "impact": "...", "action": "..."}]}.'
    )


# --- planning_suggest -----------------------------------------------------

PLANNING_SYSTEM_PROMPT = """You are a planning assistant for a car repair garage. You get the labor duration (hours) of a quote to schedule and the current state of the week (dates, occupied slots, hours already planned per day).

RULES:
1. Propose ONE recommended slot: a date (YYYY-MM-DD) and a slotLabel ("matin" or "apres_midi").
2. The date must be one of the dates given in the context.
3. Reply strictly in JSON: {"recommendedSlot": {"date": "YYYY-MM-DD", "slotLabel": "matin" or "apres_midi"}, "dailyLoad": {"YYYY-MM-DD": "faible"|"moyenne"|"forte", ...}}.
4. dailyLoad gives, for each date of the week, the load of the day AFTER placing the quote in the recommended slot. Thresholds: faible = under 4 h total, moyenne = 4 h to 8 h, forte = over 8 h."""


def week_days(week_start: str) -> List[str]:
    """The seven ISO dates starting at ``week_start``."""
    start = date.fromisoformat(week_start)
    return [(start + timedelta(days=offset)).isoformat() for offset in range(7)]


def build_planning_prompt(request: PlanningSuggestRequest) -> str:
    days = week_days(request.weekStart)
    lines = [
        f"Quote to schedule: estimated labor duration = {request.durationHours} h.",
        "",
        "Slots of the week (every day: matin = 8h-12h, apres_midi = 14h-18h):",
    ]
    for day in days:
        entries = [a for a in request.assignments if a.date == day]
        day_hours = sum(a.durationHours for a in entries)
        refs = ", ".join(
            f"{a.reference or (a.quoteId or '')[:8]} ({a.durationHours}h)" for a in entries
        ) or "none"
        lines.append(f"- {day}: {refs}. Already planned that day: {day_hours:.1f} h.")
    lines.append("")
    lines.append("Pick ONE slot (date + matin or apres_midi) for this quote and give the load per day.")
    return "\n".join(lines)


def planning_slot_in_week(data: PlanningSuggestOutput, request: PlanningSuggestRequest) -> bool:
    return data.recommendedSlot.date in week_days(request.weekStart)


def normalize_planning(
    data: PlanningSuggestOutput, request: PlanningSuggestRequest
) -> PlanningSuggestOutput:
    """Restrict ``dailyLoad`` to the requested week; missing days read as "faible"."""
    days = week_days(request.weekStart)
    slot = data.recommendedSlot
    if slot.date not in days:
        slot = slot.model_copy(update={"date": days[0]})
    return PlanningSuggestOutput(
        recommendedSlot=slot,
        dailyLoad={day: data.dailyLoad.get(day, "faible") for day in days},
    )


# --- quick_note -----------------------------------------------------------

QUICK_NOTE_SYSTEM_PROMPT = """You are an assistant for a car repair garage. You get a quick note (free text or dictation) about a customer or a vehicle.
Decide whether the note should become quote lines (work to bill) or a task (reminder, appointment, follow-up).

RULES:
1. Reply strictly in JSON with a "kind" field:
   - Work to bill: {"kind": "quote_lines", "lines": [{"description": "...", "quantity": number, "unit_price": number (excl. VAT), "type": "labor"|"part"|"forfait"}, ...]}. labor = workmanship (quantity in hours), part = spare part, forfait = flat rate.
   - Action to take: {"kind": "task", "title": "Short task title"}.
2. For quote_lines: at least one line, descriptions in French, realistic prices excl. VAT.
3. For task: a short, actionable title.
4. Only use what the note says; do not invent anything."""


def build_quick_note_prompt(request: QuickNoteRequest) -> str:
    entity_type = "vehicle" if request.entityType == "vehicle" else "client"
    entity_id = (request.entityId or "").strip()
    shown_id = f"{entity_id[:8]}..." if entity_id else "-"
    return (
        f"Context: entity = {entity_type}, id = {shown_id}.\n\n"
        f"Note:\n{request.note.strip()}\n\n"
        'Reply in JSON only: either {"kind": "quote_lines", "lines": [...]} or {"kind": "task", "title": "..."}.'
    )


# --- copilot --------------------------------------------------------------

DASHBOARD_PREFIX = "/dashboard/"
ALLOWED_PATH_PREFIXES = (
    "/dashboard",
    "/dashboard/devis",
    "/dashboard/clients",
    "/dashboard/vehicles",
    "/dashboard/settings",
    "/dashboard/admin",
)
FORBIDDEN_PATH_PARTS = ("/tasks", "/planning", "/insights", "/debug-data")
DESTRUCTIVE_WORDS = ("delete", "archive")

COPILOT_SYSTEM_PROMPT = """You are the GarageOS Copilot: a decision assistant for the owner of a car repair garage. Answer in French like a business advisor.

Short, structured, quantified, actionable answers. Professional, clear, direct tone.

MANDATORY RULES:
1. Never repeat data already visible on the dashboard without interpreting it.
2. Always give a conclusion and one concrete recommended action.
3. Prioritise what impacts revenue (high-value quotes, status "sent", age).
4. No jargon, no vague answers. Without relevant data, propose a proactive action.
5. Never invent data. Never advise outside the garage CRM.

DATA (use only this to answer):
{context}

Allowed links ONLY: Dashboard = /dashboard ; Quotes = /dashboard/devis ; Clients = /dashboard/clients ; Vehicles = /dashboard/vehicles ; Settings = /dashboard/settings ; New quote = /dashboard/devis/new ; quote detail = /dashboard/devis/[id] ; client detail = /dashboard/clients/[id] ; vehicle detail = /dashboard/vehicles/[id].

Reply strictly in JSON: {{"answer": "text", "actions": [{{"label": "Label", "href": "/dashboard/..."}}]}}."""


def is_allowed_href(href: str) -> bool:
    """Only read-only dashboard pages may be offered as copilot actions."""
    path, _, query = href.partition("?")
    if not path.startswith(DASHBOARD_PREFIX):
        return False
    lower = path.lower()
    if any(word in lower for word in DESTRUCTIVE_WORDS):
        return False
    if any(part in lower for part in FORBIDDEN_PATH_PARTS):
        return False
    normalized = "/".join(segment for segment in path.split("/") if segment)
    normalized = f"/{normalized}"
    if not any(
        normalized == prefix or normalized.startswith(prefix + "/")
        for prefix in ALLOWED_PATH_PREFIXES
    ):
        return False
    query = query.strip().lower()
    if query and any(word in query for word in DESTRUCTIVE_WORDS):
        return False
    return True


def build_copilot_system_prompt(request: CopilotRequest) -> str:
    context = (request.context or "").strip() or "(no business data provided)"
    return COPILOT_SYSTEM_PROMPT.format(context=context)


def build_copilot_prompt(request: CopilotRequest) -> str:
    return request.message.strip()


def build_copilot_history(request: CopilotRequest) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in request.history]


def filter_copilot_actions(data: CopilotOutput, request: CopilotRequest) -> CopilotOutput:
    return CopilotOutput(
        answer=data.answer,
        actions=[action for action in data.actions if is_allowed_href(action.href)],
    )


# --- generate_quote_lines -------------------------------------------------

GENERATE_LINES_SYSTEM_PROMPT = """You are an experienced workshop manager in a professional car repair garage. From a free-text description of the work, draft the lines of a clear, professional quote. Write every description in French.

RULES:
1. Each line is {{"type": "piece"|"main_oeuvre"|"forfait", "description": "...", "quantity": number, "unit": "unite"|"heure", "unit_price_ht": number, "isOption": boolean, "isIncluded": boolean}}.
2. piece = spare parts, fluids and consumables (unit "unite"); main_oeuvre = labor in hours (unit "heure"); forfait = fixed-price service such as "Consommables atelier" (unit "unite"), only when relevant.
3. One line per real part, no duplicates (never "Huile moteur 5W30 — 4L" twice). Labor grouped per logical job: "Vidange moteur + remplacement filtre" is ONE line, not two.
4. Labor rate: {labor_rate:.2f} EUR excl. VAT per hour. Realistic durations (0.25 h minimum, multiples of 0.05 h), never 0 h. Respect any total duration given by the user.
5. Free checks (inspections, road test) are included: isIncluded=true and unit_price_ht=0. Never list more than one included line; group them.
6. Options are never active by default: isOption=true, with a complete, explicit description.
7. Realistic French market prices. One single oil viscosity per quote. Parts and labor use the same wording ("Plaquettes de frein avant" / "Remplacement plaquettes de frein avant").
8. Short, complete descriptions (no truncated words, no trailing "(", "+" or "—").
9. Order: parts, labor, flat rates, options. 8 to 12 lines at most.
10. Reply strictly in JSON: {{"lines": [ ... ]}}. No text before or after."""


def build_generate_lines_system_prompt(request: GenerateQuoteLinesRequest) -> str:
    return GENERATE_LINES_SYSTEM_PROMPT.format(labor_rate=get_settings().default_labor_rate)


def build_generate_lines_prompt(request: GenerateQuoteLinesRequest) -> str:
    lines = [f'Description d\'intervention : "{request.description.strip()}"']
    vehicle = " ".join(
        part.strip() for part in (request.vehicle_make, request.vehicle_model) if part and part.strip()
    )
    if vehicle:
        lines.append(f"Véhicule : {vehicle}")
    return "\n".join(lines)


FEATURES: Dict[FeatureKey, FeatureDefinition] = {
    FeatureKey.CLIENT_MESSAGE: FeatureDefinition(
        key=FeatureKey.CLIENT_MESSAGE,
        shape="client_message",
        system_prompt=CLIENT_MESSAGE_SYSTEM_PROMPT,
        input_model=ClientMessageRequest,
        build_user_prompt=build_client_message_prompt,
    ),
    FeatureKey.QUOTE_EXPLAIN: FeatureDefinition(
        key=FeatureKey.QUOTE_EXPLAIN,
        shape="quote_explain",
        system_prompt=QUOTE_EXPLAIN_SYSTEM_PROMPT,
        input_model=QuoteExplainRequest,
        build_user_prompt=build_quote_explain_prompt,
    ),
    FeatureKey.INSIGHTS: FeatureDefinition(
        key=FeatureKey.INSIGHTS,
        shape="insights",
        system_prompt=INSIGHTS_SYSTEM_PROMPT,
        input_model=InsightsRequest,
        build_user_prompt=build_insights_prompt,
    ),
    FeatureKey.PLANNING_SUGGEST: FeatureDefinition(
        key=FeatureKey.PLANNING_SUGGEST,
        shape="planning_suggest",
        system_prompt=PLANNING_SYSTEM_PROMPT,
        input_model=PlanningSuggestRequest,
        build_user_prompt=build_planning_prompt,
        accept=planning_slot_in_week,
        post_process=normalize_planning,
    ),
    FeatureKey.QUICK_NOTE: FeatureDefinition(
        key=FeatureKey.QUICK_NOTE,
        shape="quick_note",
        system_prompt=QUICK_NOTE_SYSTEM_PROMPT,
        input_model=QuickNoteRequest,
        build_user_prompt=build_quick_note_prompt,
    ),
    FeatureKey.COPILOT: FeatureDefinition(
        key=FeatureKey.COPILOT,
        shape="copilot",
        system_prompt=COPILOT_SYSTEM_PROMPT,
        build_system_prompt=build_copilot_system_prompt,
        input_model=CopilotRequest,
        build_user_prompt=build_copilot_prompt,
        build_history=build_copilot_history,
        post_process=filter_copilot_actions,
    ),
    FeatureKey.GENERATE_QUOTE_LINES: FeatureDefinition(
        key=FeatureKey.GENERATE_QUOTE_LINES,
        shape="generate_quote_lines",
        system_prompt=GENERATE_LINES_SYSTEM_PROMPT,
        build_system_prompt=build_generate_lines_system_prompt,
        input_model=GenerateQuoteLinesRequest,
        build_user_prompt=build_generate_lines_prompt,
        post_process=post_process_lines,
    ),
}


def get_feature(key: FeatureKey) -> FeatureDefinition:
    return FEATURES[key]
