"""Structured report model, repair and offline synthesis."""

from polaris_orchestrator.report.facts import ContextFacts, idempotency_key
from polaris_orchestrator.report.local import build_local_report
from polaris_orchestrator.report.repair import RepairOutcome, repair, repair_with_diagnostics, to_json
from polaris_orchestrator.report.schema import MANDATORY_FIELDS, PLACEHOLDER, StructuredReport

__all__ = [
    "ContextFacts",
    "idempotency_key",
    "build_local_report",
    "RepairOutcome",
    "repair",
    "repair_with_diagnostics",
    "to_json",
    "MANDATORY_FIELDS",
    "PLACEHOLDER",
    "StructuredReport",
]
