"""Prompt builders for the degraded cascade strategies."""

from typing import Tuple

import orjson

from polaris_orchestrator.report.facts import ContextFacts
from polaris_orchestrator.report.schema import StructuredReport

JSON_ONLY_SYSTEM = (
    "You are a principal L&D consultant. Output VALID JSON ONLY, with no markdown and no text "
    "outside the JSON object. If a detail is unknown, use null or an empty list."
)

MINIMAL_SYSTEM = "Return one JSON object only."


def report_skeleton() -> str:
    """Empty report rendered as JSON, used to pin the expected keys."""
    return orjson.dumps(StructuredReport().model_dump()).decode()


def build_simplified_prompt(facts: ContextFacts, experience_level: str | None = None) -> Tuple[str, str]:
    """Essential facts only, no research or auxiliary sections."""
    level = experience_level or facts.experience_level or "intermediate"
    essentials = orjson.dumps(facts.essentials(), option=orjson.OPT_INDENT_2).decode()
    prompt = (
        f"USER EXPERIENCE: {level}\n\n"
        f"ESSENTIAL FACTS:\n{essentials}\n\n"
        "Write a concise, decision-ready needs-analysis report from these facts. "
        "Keep lists to 3-5 items and free text under 40 words.\n\n"
        f"Return JSON with exactly these keys:\n{report_skeleton()}"
    )
    return JSON_ONLY_SYSTEM, prompt


def build_minimal_prompt(facts: ContextFacts) -> Tuple[str, str]:
    """A few templated lines from the most critical facts."""
    lines = [f"{key.replace('_', ' ').title()}: {value}" for key, value in facts.critical().items()]
    prompt = "\n".join(
        [
            "Needs analysis for a learning program.",
            *lines,
            "Return JSON with keys summary, solution, delivery_plan, measurement, budget, risks, next_steps.",
        ]
    )
    return MINIMAL_SYSTEM, prompt
