"""Tests for report parsing, coercion and repair."""

import orjson
import pytest

from polaris_orchestrator.exceptions import ValidationFailure
from polaris_orchestrator.report import (
    MANDATORY_FIELDS,
    PLACEHOLDER,
    ContextFacts,
    StructuredReport,
    build_local_report,
    repair,
    repair_with_diagnostics,
    to_json,
)
from polaris_orchestrator.report.repair import extract_json, parse_report_text


def value_at(report: StructuredReport, path: str):
    node = report.model_dump()
    for part in path.split("."):
        node = node[part]
    return node


def assert_mandatory_populated(report: StructuredReport):
    for path in MANDATORY_FIELDS:
        assert value_at(report, path), path


class TestExtraction:
    def test_strips_reasoning_and_fences(self):
        text = '<think>{"draft": true}</think>Here you go:\n```json\n{"next_steps": ["Kickoff",]}\n```\nThanks'
        assert parse_report_text(text) == {"next_steps": ["Kickoff"]}

    def test_slices_surrounding_prose(self):
        assert extract_json('Report: {"a": {"b": 1}} end.') == '{"a": {"b": 1}}'

    def test_normalizes_smart_quotes(self):
        assert parse_report_text("{“next_steps”: [“Plan”]}") == {"next_steps": ["Plan"]}

    def test_curly_quotes_inside_values_are_preserved(self):
        text = '{"summary": {"problem_statement": "Nurses call it the “shadow handoff”"}, "next_steps": ["Kickoff"]}'
        outcome = repair_with_diagnostics(text)
        assert outcome.parsed is True
        assert outcome.report.summary.problem_statement == "Nurses call it the “shadow handoff”"
        assert outcome.report.next_steps == ["Kickoff"]

    def test_apostrophes_are_never_rewritten(self):
        data = parse_report_text("{“next_steps”: [“Review the team’s plan”,]}")
        assert data == {"next_steps": ["Review the team’s plan"]}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2]", '{"unterminated": '])
    def test_unparseable_raises_validation_failure(self, text):
        with pytest.raises(ValidationFailure):
            parse_report_text(text)


class TestCoercion:
    def test_loose_shapes_accepted(self):
        report = StructuredReport.model_validate(
            {
                "summary": {"problem_statement": ["Low", "adoption"], "confidence": "85%", "objectives": "One goal"},
                "solution": {
                    "modalities": [{"name": "Microlearning", "reason": "Shift work"}],
                    "scope": {"audiences": ["Nurses"], "competencies": "Handoffs"},
                },
                "delivery_plan": {"phases": ["Pilot", {"name": "Rollout", "duration_weeks": "6 weeks"}]},
                "budget": {"currency": "usd dollars", "items": [{"item": "Authoring", "low": "$12,000"}]},
                "risks": [{"risk": "Turnover", "severity": "Critical", "likelihood": "unsure"}],
                "next_steps": "Schedule kickoff",
            }
        )
        assert report.summary.problem_statement == "Low; adoption"
        assert report.summary.confidence == 0.85
        assert report.summary.objectives == ["One goal"]
        assert report.solution.delivery_modalities[0].modality == "Microlearning"
        assert report.solution.target_audiences == ["Nurses"]
        assert report.solution.key_competencies == ["Handoffs"]
        assert [p.name for p in report.delivery_plan.phases] == ["Pilot", "Rollout"]
        assert report.delivery_plan.phases[1].duration_weeks == 6
        assert report.budget.currency == "USD"
        assert report.budget.items[0].low == 12000.0
        assert report.risks[0].severity == "high"
        assert report.risks[0].likelihood == "medium"
        assert report.next_steps == ["Schedule kickoff"]

    def test_non_mapping_sections_become_empty(self):
        report = StructuredReport.model_validate({"summary": "just text", "budget": 42, "extra": {"x": 1}})
        assert report.summary.problem_statement is None
        assert report.budget.notes is None


class TestRepair:
    def test_garbage_rebuilt_from_facts(self, facts):
        outcome = repair_with_diagnostics("The model apologised instead of answering.", facts)

        assert outcome.parsed is False
        report = outcome.report
        assert_mandatory_populated(report)
        assert report.summary.objectives == facts.objectives
        assert report.solution.target_audiences == ["Frontline nurses"]
        assert report.learner_analysis.profiles[0].segment == "Frontline nurses"
        assert report.technology_talent.technology.current_stack == facts.technology
        assert report.budget.notes == "USD 50,000 - 80,000"
        assert report.delivery_plan.timeline[0].start == "2025-01-06"
        assert report.delivery_plan.timeline[0].end == "2025-06-30"
        assert set(MANDATORY_FIELDS) <= set(outcome.synthesized)
        assert outcome.confidence == 0.0

    def test_placeholders_without_facts(self):
        report = repair({})
        assert_mandatory_populated(report)
        assert report.solution.target_audiences == [PLACEHOLDER]
        assert report.summary.problem_statement == PLACEHOLDER
        assert report.budget.notes == PLACEHOLDER

    def test_unknowns_list_every_synthesized_field(self):
        outcome = repair_with_diagnostics({"risks": [{"risk": "Scope creep"}]}, ContextFacts())
        unknowns = outcome.report.summary.unknowns
        assert "risks[0].mitigation" in outcome.synthesized
        assert f"risks[0].mitigation: {PLACEHOLDER}" in unknowns
        assert f"next_steps: {PLACEHOLDER}" in unknowns
        assert len(unknowns) == len(set(unknowns))
        assert outcome.report.risks[0].risk == "Scope creep"

    def test_valid_json_missing_budget(self, facts):
        complete = build_local_report(facts).model_dump()
        del complete["budget"]
        raw = orjson.dumps(complete).decode()

        outcome = repair_with_diagnostics(raw, facts)

        assert outcome.parsed is True
        assert outcome.synthesized == ["budget.notes"]
        assert outcome.report.budget.notes == facts.budget
        assert to_json(repair(outcome.report, facts)) == to_json(outcome.report)

    def test_missing_budget_without_facts_uses_placeholder(self):
        outcome = repair_with_diagnostics('{"next_steps": ["Kickoff"]}')
        assert outcome.report.budget.notes == PLACEHOLDER
        assert outcome.report.next_steps == ["Kickoff"]

    def test_complete_report_untouched(self, facts):
        report = build_local_report(facts)
        outcome = repair_with_diagnostics(report, facts)
        assert outcome.synthesized == []
        assert outcome.confidence == 1.0
        assert outcome.report == report

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "not json",
            "{}",
            '{"summary": "just text", "risks": "Budget cuts"}',
            '```json\n{"solution": {"modalities": ["Workshops"]}, "next_steps": []}\n```',
            {"delivery_plan": {"phases": [{"duration_weeks": 3}]}, "measurement": {"success_metrics": ["NPS"]}},
        ],
    )
    def test_idempotent(self, raw, facts):
        once = repair(raw, facts)
        twice = repair(once, facts)
        assert twice == once
        assert to_json(twice) == to_json(once)
