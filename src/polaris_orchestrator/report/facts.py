"""Caller-supplied context facts and idempotency-key derivation."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from polaris_orchestrator.orchestrator.cache import fingerprint


def _as_items(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        parts = [p.strip(" -•\t") for p in value.replace(";", "\n").splitlines()]
        return [p for p in parts if p]
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value)]


class ContextFacts(BaseModel):
    """What the intake wizard collected. Repair and the local report build only from these."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    organization: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    audience: Optional[str] = None
    objectives: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    budget: Optional[str] = None
    timeline_start: Optional[str] = None
    timeline_end: Optional[str] = None
    technology: List[str] = Field(default_factory=list)
    experience_level: Optional[str] = None
    research: Dict[str, str] = Field(default_factory=dict)

    @field_validator("objectives", "constraints", "technology", mode="before")
    @classmethod
    def split_items(cls, v):
        return _as_items(v)

    @field_validator(
        "organization", "industry", "company_size", "audience", "budget",
        "timeline_start", "timeline_end", "experience_level", mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def essentials(self) -> Dict[str, Any]:
        """Facts a simplified prompt keeps; auxiliary research is dropped."""
        facts = {
            "organization": self.organization,
            "industry": self.industry,
            "company_size": self.company_size,
            "audience": self.audience,
            "objectives": self.objectives,
            "constraints": self.constraints,
            "budget": self.budget,
            "timeline": self.timeline_label(),
            "technology": self.technology,
            "experience_level": self.experience_level,
        }
        return {k: v for k, v in facts.items() if v}

    def critical(self) -> Dict[str, Any]:
        """The handful of facts a minimal prompt is built from."""
        facts = {
            "organization": self.organization,
            "audience": self.audience,
            "objectives": "; ".join(self.objectives[:3]) or None,
            "budget": self.budget,
            "timeline": self.timeline_label(),
        }
        return {k: v for k, v in facts.items() if v}

    def timeline_label(self) -> Optional[str]:
        if self.timeline_start and self.timeline_end:
            return f"{self.timeline_start} to {self.timeline_end}"
        return self.timeline_start or self.timeline_end


def idempotency_key(facts: ContextFacts, prompt: str, scope: str = "report") -> str:
    """Same facts and prompt always derive the same key."""
    return fingerprint(scope, {"facts": facts.model_dump(), "prompt": prompt})
