"""
Validation and repair of structured reports.

Repair turns raw model text, a parsed mapping or an existing report into a
StructuredReport whose mandatory fields are all present and non-empty. Empty
fields are filled from the caller's facts where one exists, otherwise with
the PLACEHOLDER text. Repair never raises and is idempotent.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import orjson

from polaris_orchestrator.exceptions import ValidationFailure
from polaris_orchestrator.report.facts import ContextFacts
from polaris_orchestrator.report.schema import MANDATORY_FIELDS, PLACEHOLDER, StructuredReport
from polaris_orchestrator.telemetry.logger import get_logger

logger = get_logger(__name__)

_HIDDEN_BLOCKS = re.compile(r"<(think|analysis)>.*?</\1>", re.IGNORECASE | re.DOTALL)
_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_SMART_DOUBLE_QUOTES = str.maketrans({"“": '"', "”": '"'})

RawReport = Union[str, bytes, Dict[str, Any], StructuredReport, None]


@dataclass
class RepairOutcome:
    report: StructuredReport
    synthesized: List[str] = field(default_factory=list)
    parsed: bool = True

    @property
    def confidence(self) -> float:
        filled = sum(1 for path in self.synthesized if path in MANDATORY_FIELDS)
        return round(1 - filled / len(MANDATORY_FIELDS), 2)


def extract_json(text: str) -> str:
    """Best-effort isolation of the JSON object inside model output."""
    cleaned = _HIDDEN_BLOCKS.sub("", text)
    fenced = _FENCED.search(cleaned)
    if fenced and "{" in fenced.group(1):
        cleaned = fenced.group(1)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned.strip()


def _repair_candidates(candidate: str) -> List[str]:
    """The strict candidate first, then progressively looser rewrites."""
    without_commas = _TRAILING_COMMA.sub(r"\1", candidate)
    straightened = candidate.translate(_SMART_DOUBLE_QUOTES)
    return [candidate, without_commas, straightened, _TRAILING_COMMA.sub(r"\1", straightened)]


def parse_report_text(text: str) -> Dict[str, Any]:
    """Parse model output into a mapping or raise ValidationFailure.

    Typographic double quotes are only straightened after a strict parse
    fails, so curly quotes inside valid string values survive untouched.
    """
    candidate = extract_json(text)
    if not candidate:
        raise ValidationFailure("Model output is empty")
    error: Optional[orjson.JSONDecodeError] = None
    data: Any = None
    for attempt in _repair_candidates(candidate):
        try:
            data = orjson.loads(attempt)
            break
        except orjson.JSONDecodeError as e:
            error = error or e
    else:
        raise ValidationFailure(f"Model output is not valid JSON: {error}") from error
    if not isinstance(data, dict):
        raise ValidationFailure("Model output is not a JSON object")
    return data


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def _get(data: Dict[str, Any], path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _set(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    node = data
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def _or_placeholder(value: Optional[str]) -> str:
    return value or PLACEHOLDER


def _defaults(facts: ContextFacts) -> Dict[str, Callable[[], Any]]:
    """Fact-derived default for each mandatory field."""
    audience = facts.audience
    return {
        "summary.problem_statement": lambda: _or_placeholder(facts.objectives[0] if facts.objectives else None),
        "summary.current_state": lambda: [PLACEHOLDER],
        "summary.objectives": lambda: list(facts.objectives) or [PLACEHOLDER],
        "solution.delivery_modalities": lambda: [{"modality": PLACEHOLDER, "reason": PLACEHOLDER, "priority": 1}],
        "solution.target_audiences": lambda: [_or_placeholder(audience)],
        "solution.key_competencies": lambda: [PLACEHOLDER],
        "solution.content_outline": lambda: [PLACEHOLDER],
        "learner_analysis.profiles": lambda: [
            {
                "segment": _or_placeholder(audience),
                "roles": [],
                "context": facts.experience_level,
                "motivators": [],
                "constraints": list(facts.constraints),
            }
        ],
        "technology_talent.technology.current_stack": lambda: list(facts.technology) or [PLACEHOLDER],
        "technology_talent.talent.available_roles": lambda: [PLACEHOLDER],
        "delivery_plan.phases": lambda: [
            {"name": PLACEHOLDER, "duration_weeks": 0, "goals": [PLACEHOLDER], "activities": [PLACEHOLDER]}
        ],
        "delivery_plan.timeline": lambda: [
            {
                "label": "Program window" if facts.timeline_label() else PLACEHOLDER,
                "start": facts.timeline_start,
                "end": facts.timeline_end,
            }
        ],
        "measurement.success_metrics": lambda: [
            {
                "metric": objective,
                "baseline": None,
                "target": PLACEHOLDER,
                "timeframe": _or_placeholder(facts.timeline_end),
            }
            for objective in (facts.objectives[:3] or [PLACEHOLDER])
        ],
        "budget.notes": lambda: _or_placeholder(facts.budget),
        "risks": lambda: [
            {"risk": PLACEHOLDER, "mitigation": PLACEHOLDER, "severity": "medium", "likelihood": "medium"}
        ],
        "next_steps": lambda: [PLACEHOLDER],
    }


# Required text inside each item of object lists.
_ITEM_FIELDS = {
    "solution.delivery_modalities": ("modality", "reason"),
    "learner_analysis.profiles": ("segment",),
    "delivery_plan.phases": ("name",),
    "delivery_plan.timeline": ("label",),
    "measurement.success_metrics": ("metric", "target", "timeframe"),
    "risks": ("risk", "mitigation"),
}


def _to_mapping(raw: RawReport) -> tuple[Dict[str, Any], bool]:
    if isinstance(raw, StructuredReport):
        return raw.model_dump(), True
    if isinstance(raw, dict):
        return raw, True
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return parse_report_text(raw), True
        except ValidationFailure as e:
            logger.warning("Report output unparseable, rebuilding from context", error=e.message)
            return {}, False
    return {}, False


def repair_with_diagnostics(raw: RawReport, facts: Optional[ContextFacts] = None) -> RepairOutcome:
    """Repair ``raw`` and report which fields were synthesized."""
    facts = facts or ContextFacts()
    data, parsed = _to_mapping(raw)
    report = StructuredReport.model_validate(data)
    normalized = report.model_dump()

    synthesized: List[str] = []
    defaults = _defaults(facts)
    for path in MANDATORY_FIELDS:
        if _is_empty(_get(normalized, path)):
            _set(normalized, path, defaults[path]())
            synthesized.append(path)

    for path, keys in _ITEM_FIELDS.items():
        for index, item in enumerate(_get(normalized, path) or []):
            for key in keys:
                if _is_empty(item.get(key)):
                    item[key] = PLACEHOLDER
                    synthesized.append(f"{path}[{index}].{key}")

    unknowns = normalized["summary"]["unknowns"]
    for path in synthesized:
        note = f"{path}: {PLACEHOLDER}"
        if note not in unknowns:
            unknowns.append(note)

    if synthesized:
        logger.info("Report repaired", synthesized=len(synthesized), parsed=parsed)
    return RepairOutcome(report=StructuredReport.model_validate(normalized), synthesized=synthesized, parsed=parsed)


def repair(raw: RawReport, facts: Optional[ContextFacts] = None) -> StructuredReport:
    """Return a report whose mandatory fields are all populated."""
    return repair_with_diagnostics(raw, facts).report


def to_json(report: StructuredReport) -> str:
    return orjson.dumps(report.model_dump(), option=orjson.OPT_INDENT_2).decode()
