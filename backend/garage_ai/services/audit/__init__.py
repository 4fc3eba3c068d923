"""
Deterministic quote audit: rules engine and fix application.

No model call happens in this package.
"""
from .engine import audit
from .fixes import apply_all_findings, apply_finding

__all__ = ["audit", "apply_finding", "apply_all_findings"]
