"""
Structured needs-analysis report model.

Every field has a default, and every field accepts loosely shaped model
output: a bare string where a list is expected, numeric strings, unknown
severity labels and so on. Coercion is stable, so validating an already
validated report changes nothing.
"""

import re
from typing import Annotated, Any, Callable, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

PLACEHOLDER = "Pending: requires stakeholder input"

SECTION_NAMES = (
    "summary",
    "solution",
    "learner_analysis",
    "technology_talent",
    "delivery_plan",
    "measurement",
    "budget",
    "risks",
    "next_steps",
)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _text_of(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        for item in value.values():
            text = _text_of(item)
            if text:
                return text
        return None
    if isinstance(value, (list, tuple)):
        parts = [t for t in (_text_of(v) for v in value) if t]
        return "; ".join(parts) or None
    return str(value).strip() or None


def _coerce_text(value: Any) -> Optional[str]:
    return _text_of(value)


def _coerce_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    items = []
    for item in value:
        text = _text_of(item)
        if text:
            items.append(text)
    return items


def _coerce_number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER.search(value.replace(",", ""))
        return float(match.group()) if match else 0.0
    return 0.0


def _coerce_int(value: Any) -> int:
    return int(_coerce_number(value))


def _coerce_level(value: Any) -> str:
    text = (_text_of(value) or "").lower()
    if text in ("low", "medium", "high"):
        return text
    if text in ("critical", "severe", "very high"):
        return "high"
    if text in ("minor", "very low"):
        return "low"
    return "medium"


def _coerce_confidence(value: Any) -> float:
    if value is None:
        return 0.5
    number = _coerce_number(value)
    if number > 1:
        number = number / 100
    return round(max(0.0, min(1.0, number)), 2)


def _object_list(text_key: str) -> Callable[[Any], List[Any]]:
    """Accept a list of objects, a single object, or bare strings naming ``text_key``."""

    def coerce(value: Any) -> List[Any]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        items = []
        for item in value:
            if isinstance(item, BaseModel):
                items.append(item)
            elif isinstance(item, dict):
                items.append(item)
            else:
                text = _text_of(item)
                if text:
                    items.append({text_key: text})
        return items

    return coerce


Text = Annotated[str, BeforeValidator(lambda v: _coerce_text(v) or "")]
OptText = Annotated[Optional[str], BeforeValidator(_coerce_text)]
StrList = Annotated[List[str], BeforeValidator(_coerce_str_list)]
Number = Annotated[float, BeforeValidator(_coerce_number)]
Int = Annotated[int, BeforeValidator(_coerce_int)]
Level = Annotated[Literal["low", "medium", "high"], BeforeValidator(_coerce_level)]


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def require_mapping(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        return data if isinstance(data, dict) else {}


class Summary(_Section):
    problem_statement: OptText = None
    current_state: StrList = Field(default_factory=list)
    root_causes: StrList = Field(default_factory=list)
    objectives: StrList = Field(default_factory=list)
    assumptions: StrList = Field(default_factory=list)
    unknowns: StrList = Field(default_factory=list)
    confidence: Annotated[float, BeforeValidator(_coerce_confidence)] = 0.5


class DeliveryModality(_Section):
    modality: Text = ""
    reason: Text = ""
    priority: Int = 1

    @model_validator(mode="before")
    @classmethod
    def accept_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "modality" not in data and "name" in data:
            data = {**data, "modality": data["name"]}
        return data


class Accessibility(_Section):
    standards: StrList = Field(default_factory=list)
    notes: OptText = None


class Solution(_Section):
    delivery_modalities: Annotated[List[DeliveryModality], BeforeValidator(_object_list("modality"))] = Field(
        default_factory=list
    )
    target_audiences: StrList = Field(default_factory=list)
    key_competencies: StrList = Field(default_factory=list)
    content_outline: StrList = Field(default_factory=list)
    accessibility_and_inclusion: Accessibility = Field(default_factory=Accessibility)

    @model_validator(mode="before")
    @classmethod
    def accept_condensed_shape(cls, data: Any) -> Any:
        # Condensed prompts answer with "modalities" and a nested "scope".
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "delivery_modalities" not in data and "modalities" in data:
            data["delivery_modalities"] = data["modalities"]
        scope = data.get("scope")
        if isinstance(scope, dict):
            data.setdefault("target_audiences", scope.get("audiences"))
            data.setdefault("key_competencies", scope.get("competencies"))
            data.setdefault("content_outline", scope.get("content_outline"))
        return data


class LearnerProfile(_Section):
    segment: Text = ""
    roles: StrList = Field(default_factory=list)
    context: OptText = None
    motivators: StrList = Field(default_factory=list)
    constraints: StrList = Field(default_factory=list)


class LearnerAnalysis(_Section):
    profiles: Annotated[List[LearnerProfile], BeforeValidator(_object_list("segment"))] = Field(
        default_factory=list
    )
    readiness_risks: StrList = Field(default_factory=list)


class TechRecommendation(_Section):
    capability: Text = ""
    fit: Text = ""
    constraints: StrList = Field(default_factory=list)


class DataPlan(_Section):
    standards: StrList = Field(default_factory=list)
    integrations: StrList = Field(default_factory=list)


class Technology(_Section):
    current_stack: StrList = Field(default_factory=list)
    gaps: StrList = Field(default_factory=list)
    recommendations: Annotated[List[TechRecommendation], BeforeValidator(_object_list("capability"))] = Field(
        default_factory=list
    )
    data_plan: DataPlan = Field(default_factory=DataPlan)


class Talent(_Section):
    available_roles: StrList = Field(default_factory=list)
    gaps: StrList = Field(default_factory=list)
    recommendations: StrList = Field(default_factory=list)


class TechnologyTalent(_Section):
    technology: Technology = Field(default_factory=Technology)
    talent: Talent = Field(default_factory=Talent)


class Phase(_Section):
    name: Text = ""
    duration_weeks: Int = 0
    goals: StrList = Field(default_factory=list)
    activities: StrList = Field(default_factory=list)


class Milestone(_Section):
    label: Text = ""
    start: OptText = None
    end: OptText = None


class DeliveryPlan(_Section):
    phases: Annotated[List[Phase], BeforeValidator(_object_list("name"))] = Field(default_factory=list)
    timeline: Annotated[List[Milestone], BeforeValidator(_object_list("label"))] = Field(default_factory=list)
    resources: StrList = Field(default_factory=list)


class SuccessMetric(_Section):
    metric: Text = ""
    baseline: OptText = None
    target: Text = ""
    timeframe: Text = ""


class LearningAnalytics(_Section):
    levels: StrList = Field(default_factory=list)
    reporting_cadence: OptText = None


class Measurement(_Section):
    success_metrics: Annotated[List[SuccessMetric], BeforeValidator(_object_list("metric"))] = Field(
        default_factory=list
    )
    assessment_strategy: StrList = Field(default_factory=list)
    data_sources: StrList = Field(default_factory=list)
    learning_analytics: LearningAnalytics = Field(default_factory=LearningAnalytics)


class BudgetItem(_Section):
    item: Text = ""
    low: Number = 0.0
    high: Number = 0.0


class Budget(_Section):
    currency: Annotated[str, BeforeValidator(lambda v: (_coerce_text(v) or "USD").upper()[:3])] = "USD"
    notes: OptText = None
    items: Annotated[List[BudgetItem], BeforeValidator(_object_list("item"))] = Field(default_factory=list)


class Risk(_Section):
    risk: Text = ""
    mitigation: Text = ""
    severity: Level = "medium"
    likelihood: Level = "medium"


class StructuredReport(_Section):
    """The nine-section needs-analysis report."""

    summary: Summary = Field(default_factory=Summary)
    solution: Solution = Field(default_factory=Solution)
    learner_analysis: LearnerAnalysis = Field(default_factory=LearnerAnalysis)
    technology_talent: TechnologyTalent = Field(default_factory=TechnologyTalent)
    delivery_plan: DeliveryPlan = Field(default_factory=DeliveryPlan)
    measurement: Measurement = Field(default_factory=Measurement)
    budget: Budget = Field(default_factory=Budget)
    risks: Annotated[List[Risk], BeforeValidator(_object_list("risk"))] = Field(default_factory=list)
    next_steps: StrList = Field(default_factory=list)


# Dotted paths that must be present and non-empty after repair.
MANDATORY_FIELDS = (
    "summary.problem_statement",
    "summary.current_state",
    "summary.objectives",
    "solution.delivery_modalities",
    "solution.target_audiences",
    "solution.key_competencies",
    "solution.content_outline",
    "learner_analysis.profiles",
    "technology_talent.technology.current_stack",
    "technology_talent.talent.available_roles",
    "delivery_plan.phases",
    "delivery_plan.timeline",
    "measurement.success_metrics",
    "budget.notes",
    "risks",
    "next_steps",
)
