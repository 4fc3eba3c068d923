"""
Unit tests for applying audit fixes to quote lines.
"""
from garage_ai.models.quote import Finding, QuoteLine
from garage_ai.services.audit import apply_all_findings, apply_finding
from garage_ai.services.audit.fixes import DEFAULT_OPTIONAL_REASON, compute_line_total


def _finding(fix):
    return Finding.model_validate(
        {
            "id": "finding-1",
            "severity": "warn",
            "title": "t",
            "explanation": "e",
            "proposedFix": fix,
        }
    )


def _quote():
    return [
        QuoteLine(id="l1", description="Plaquettes", quantity=1, unit_price=40, total=40, type="part"),
        QuoteLine(id="l2", description="Main d'oeuvre", quantity=1.5, unit_price=60, total=90, type="labor"),
    ]


def test_compute_line_total_forfait_ignores_quantity():
    assert compute_line_total("forfait", 3, 49.99) == 49.99
    assert compute_line_total("labor", 1.5, 60) == 90


def test_add_line_appends_with_generated_id():
    finding = _finding(
        {
            "action": "ADD_LINE",
            "payload": {"line": {"description": "Filtre", "quantity": 2, "unit_price": 7.5, "type": "part"}},
        }
    )

    result = apply_finding(finding, _quote())

    assert len(result) == 3
    added = result[-1]
    assert added.id
    assert added.total == 15
    assert added.type == "part"


def test_add_forfait_line_forces_quantity_one():
    finding = _finding(
        {
            "action": "ADD_LINE",
            "payload": {"line": {"description": "Forfait", "quantity": 4, "unit_price": 89, "type": "forfait"}},
        }
    )

    added = apply_finding(finding, [])[0]

    assert added.quantity == 1
    assert added.total == 89


def test_remove_line():
    finding = _finding({"action": "REMOVE_LINE", "payload": {"lineId": "l1"}})

    result = apply_finding(finding, _quote())

    assert [line.id for line in result] == ["l2"]


def test_update_line_recomputes_total():
    finding = _finding(
        {"action": "UPDATE_LINE", "payload": {"lineId": "l2", "quantity": 2}}
    )

    result = apply_finding(finding, _quote())

    updated = result[1]
    assert updated.quantity == 2
    assert updated.unit_price == 60
    assert updated.total == 120
    assert updated.description == "Main d'oeuvre"


def test_update_unknown_line_is_noop():
    finding = _finding({"action": "UPDATE_LINE", "payload": {"lineId": "missing", "quantity": 9}})

    assert apply_finding(finding, _quote()) == _quote()


def test_mark_optional_uses_default_reason():
    finding = _finding({"action": "MARK_OPTIONAL", "payload": {"lineId": "l1"}})

    result = apply_finding(finding, _quote())

    assert result[0].optional is True
    assert result[0].optional_reason == DEFAULT_OPTIONAL_REASON
    assert result[1].optional is None


def test_finding_without_fix_returns_copy():
    finding = _finding(None)
    lines = _quote()

    result = apply_finding(finding, lines)

    assert result == lines
    assert result is not lines


def test_apply_all_findings_in_order():
    findings = [
        _finding({"action": "REMOVE_LINE", "payload": {"lineId": "l1"}}),
        _finding({"action": "MARK_OPTIONAL", "payload": {"lineId": "l2", "optional_reason": "Conseillé"}}),
    ]

    result = apply_all_findings(findings, _quote())

    assert len(result) == 1
    assert result[0].id == "l2"
    assert result[0].optional_reason == "Conseillé"


def test_input_lines_are_not_mutated():
    lines = _quote()
    finding = _finding({"action": "UPDATE_LINE", "payload": {"lineId": "l1", "unit_price": 55}})

    apply_finding(finding, lines)

    assert lines[0].unit_price == 40
