"""Deterministic offline report built only from the caller's facts."""

from typing import Any, Dict, List

from polaris_orchestrator.report.facts import ContextFacts
from polaris_orchestrator.report.repair import repair
from polaris_orchestrator.report.schema import StructuredReport

PHASES = (
    ("Discover", 2, "Validate requirements with stakeholders", "Stakeholder interviews and audience analysis"),
    ("Design", 3, "Agree learning architecture", "Draft blueprint, storyboards and assessment plan"),
    ("Develop", 4, "Build and test learning assets", "Content production, pilot and revisions"),
    ("Deliver & Measure", 4, "Launch and track outcomes", "Rollout, learner support and reporting"),
)

STANDARD_RISKS = (
    ("Stakeholder availability limits review cycles", "Agree a review calendar during Discover", "medium", "medium"),
    ("Learner adoption is lower than planned", "Involve managers and communicate benefits early", "medium", "medium"),
    ("Technology integration delays delivery", "Confirm platform constraints before Develop", "high", "low"),
)

NEXT_STEPS = (
    "Confirm objectives and success measures with the project sponsor",
    "Validate audience profiles and constraints",
    "Review this draft and replace pending items with stakeholder input",
)


def _risks() -> List[Dict[str, Any]]:
    return [
        {"risk": risk, "mitigation": mitigation, "severity": severity, "likelihood": likelihood}
        for risk, mitigation, severity, likelihood in STANDARD_RISKS
    ]


def build_local_report(facts: ContextFacts) -> StructuredReport:
    """Assemble a structurally complete report without any network call.

    The output depends only on ``facts``; the same facts always give the
    same report.
    """
    audience = facts.audience
    draft: Dict[str, Any] = {
        "summary": {
            "problem_statement": (
                f"{facts.organization}: {facts.objectives[0]}" if facts.organization and facts.objectives else None
            ),
            "current_state": list(facts.constraints[:3]),
            "objectives": list(facts.objectives),
            "assumptions": ["Generated offline from intake answers; AI analysis was unavailable"],
            "confidence": 0.3,
        },
        "solution": {
            "delivery_modalities": [
                {"modality": "Blended learning", "reason": "Balances flexibility with guided practice", "priority": 1}
            ],
            "target_audiences": [audience] if audience else [],
            "accessibility_and_inclusion": {"standards": ["WCAG 2.2 AA"], "notes": None},
        },
        "learner_analysis": {
            "profiles": [
                {
                    "segment": audience,
                    "context": facts.experience_level,
                    "constraints": list(facts.constraints),
                }
            ]
            if audience
            else [],
        },
        "technology_talent": {
            "technology": {"current_stack": list(facts.technology)},
        },
        "delivery_plan": {
            "phases": [
                {"name": name, "duration_weeks": weeks, "goals": [goal], "activities": [activity]}
                for name, weeks, goal, activity in PHASES
            ],
        },
        "budget": {"notes": facts.budget},
        "risks": _risks(),
        "next_steps": list(NEXT_STEPS),
    }
    if facts.industry:
        draft["summary"]["current_state"].insert(0, f"Industry: {facts.industry}")
    return repair(draft, facts)
