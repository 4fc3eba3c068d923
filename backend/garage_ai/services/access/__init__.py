"""Access gating: authentication, rate limit, feature flags and quota."""
from .gate import AccessGate, DenialReason, GateDecision, get_access_gate, raise_for_denial

__all__ = ["AccessGate", "DenialReason", "GateDecision", "get_access_gate", "raise_for_denial"]
