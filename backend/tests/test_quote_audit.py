"""
Unit tests for the deterministic quote audit rules.
"""
from garage_ai.models.quote import AddLineFix, AuditLineInput, RemoveLineFix
from garage_ai.services.audit import audit


def _lines(*rows):
    return [AuditLineInput(**row) for row in rows]


def _titles(findings):
    return [f.title for f in findings]


def test_duplicate_lines_yield_one_remove_fix_for_second_line():
    lines = _lines(
        {"id": "l1", "description": "Brake pads front", "type": "part"},
        {"id": "l2", "description": "Brake pads front", "type": "part"},
    )

    findings = audit(lines, labor_rate=60)

    duplicates = [f for f in findings if f.title == "Duplicate line detected"]
    assert len(duplicates) == 1
    duplicate = duplicates[0]
    assert duplicate.severity == "warn"
    assert isinstance(duplicate.proposed_fix, RemoveLineFix)
    assert duplicate.proposed_fix.payload.lineId == "l2"


def test_duplicate_matches_case_insensitively():
    lines = _lines(
        {"id": "a", "description": "Vidange", "type": "labor"},
        {"id": "b", "description": "VIDANGE", "type": "labor"},
    )

    findings = audit(lines, labor_rate=60)

    assert _titles(findings).count("Duplicate line detected") == 1


def test_duplicate_category_requires_same_type():
    lines = _lines(
        {"id": "a", "description": "Plaquettes avant", "type": "part"},
        {"id": "b", "description": "Remplacement plaquettes", "type": "labor"},
    )

    findings = audit(lines, labor_rate=60)

    assert "Duplicate line detected" not in _titles(findings)


def test_duplicate_category_same_type_is_reported():
    lines = _lines(
        {"id": "a", "description": "Plaquettes avant Bosch", "type": "part"},
        {"id": "b", "description": "Jeu de plaquettes", "type": "part"},
        {"id": "c", "description": "Main d'oeuvre", "type": "labor"},
    )

    findings = audit(lines, labor_rate=60)

    duplicates = [f for f in findings if f.title == "Duplicate line detected"]
    assert len(duplicates) == 1
    assert duplicates[0].proposed_fix.payload.lineId == "b"


def test_empty_descriptions_never_duplicate():
    lines = _lines(
        {"id": "a", "description": "", "type": "part"},
        {"id": "b", "description": None, "type": "part"},
    )

    assert audit(lines, labor_rate=60) == []


def test_duplicate_without_id_is_not_reported():
    lines = _lines(
        {"id": "a", "description": "Essuie-glace", "type": "part"},
        {"description": "Essuie-glace", "type": "part"},
    )

    assert "Duplicate line detected" not in _titles(audit(lines, labor_rate=60))


def test_only_first_duplicate_of_a_line_is_reported():
    lines = _lines(
        {"id": "a", "description": "Balai", "type": "part"},
        {"id": "b", "description": "Balai", "type": "part"},
        {"id": "c", "description": "Balai", "type": "part"},
    )

    findings = [f for f in audit(lines, labor_rate=60) if f.title == "Duplicate line detected"]

    # a->b and b->c
    assert [f.proposed_fix.payload.lineId for f in findings] == ["b", "c"]


def test_part_without_labor_proposes_labor_line_at_rate():
    lines = _lines({"description": "Oil filter", "type": "part"})

    findings = audit(lines, labor_rate=72.5)

    labor = [f for f in findings if f.title == "Part without associated labor"]
    assert len(labor) == 1
    fix = labor[0].proposed_fix
    assert isinstance(fix, AddLineFix)
    assert fix.payload.line.type == "labor"
    assert fix.payload.line.unit_price == 72.5
    assert fix.payload.line.quantity == 1


def test_part_with_labor_line_has_no_labor_finding():
    lines = _lines(
        {"description": "Disque de frein", "type": "part"},
        {"description": "Main d'oeuvre", "type": "labor"},
    )

    assert "Part without associated labor" not in _titles(audit(lines, labor_rate=60))


def test_unknown_type_is_treated_as_part():
    lines = _lines({"description": "Plaquettes arrière", "type": "weird"})

    assert "Part without associated labor" in _titles(audit(lines, labor_rate=60))


def test_oil_change_without_filter():
    lines = _lines(
        {"description": "Vidange moteur", "type": "labor"},
        {"description": "Huile 5W30", "type": "part"},
    )

    findings = audit(lines, labor_rate=60)

    oil = [f for f in findings if f.title == "Oil change without filter"]
    assert len(oil) == 1
    line = oil[0].proposed_fix.payload.line
    assert line.type == "part"
    assert line.unit_price == 15


def test_oil_change_with_filter_is_clean():
    lines = _lines(
        {"description": "Vidange", "type": "labor"},
        {"description": "Filtre à huile", "type": "part"},
    )

    assert audit(lines, labor_rate=60) == []


def test_brake_pads_without_inspection_is_info():
    lines = _lines(
        {"description": "Plaquettes avant", "type": "part"},
        {"description": "Pose plaquettes", "type": "labor"},
    )

    findings = audit(lines, labor_rate=60)

    safety = [f for f in findings if f.title == "Incomplete intervention"]
    assert len(safety) == 1
    assert safety[0].severity == "info"
    line = safety[0].proposed_fix.payload.line
    assert line.optional is True
    assert line.type == "labor"
    assert line.unit_price == 0


def test_brake_pads_with_inspection_has_no_safety_finding():
    lines = _lines(
        {"description": "Plaquettes avant", "type": "part"},
        {"description": "Contrôle visuel sécurité", "type": "labor"},
    )

    assert "Incomplete intervention" not in _titles(audit(lines, labor_rate=60))


def test_rule_order_is_stable():
    lines = _lines(
        {"id": "a", "description": "Plaquettes", "type": "part"},
        {"id": "b", "description": "Plaquettes", "type": "part"},
        {"id": "c", "description": "Vidange", "type": "part"},
    )

    assert _titles(audit(lines, labor_rate=60)) == [
        "Duplicate line detected",
        "Part without associated labor",
        "Oil change without filter",
        "Incomplete intervention",
    ]


def test_audit_is_idempotent_apart_from_ids():
    lines = _lines(
        {"id": "a", "description": "Brake pads front", "type": "part"},
        {"id": "b", "description": "Brake pads front", "type": "part"},
        {"id": "c", "description": "Oil change", "type": "part"},
    )

    first = audit(lines, labor_rate=60)
    second = audit(lines, labor_rate=60)

    assert [f.content_key() for f in first] == [f.content_key() for f in second]
    assert {f.id for f in first}.isdisjoint({f.id for f in second})


def test_empty_quote_has_no_findings():
    assert audit([], labor_rate=60) == []
