"""Resilient report-generation orchestrator."""

from polaris_orchestrator.context import OrchestratorContext
from polaris_orchestrator.exceptions import ConfigurationError, OrchestratorError
from polaris_orchestrator.orchestrator.cascade import CascadeResult, FallbackCascade, GenerationSpec
from polaris_orchestrator.report.facts import ContextFacts
from polaris_orchestrator.service import RESEARCH_UNAVAILABLE, GeneratedReport, ReportService

__version__ = "1.0.0"

__all__ = [
    "OrchestratorContext",
    "ConfigurationError",
    "OrchestratorError",
    "CascadeResult",
    "FallbackCascade",
    "GenerationSpec",
    "ContextFacts",
    "RESEARCH_UNAVAILABLE",
    "GeneratedReport",
    "ReportService",
]
