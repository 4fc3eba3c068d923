"""
AI generation package.

Providers, resilience wrapper, JSON extraction, result shapes and the fallback
orchestrator, plus the decision service that chains them behind the access
gate. The quote audit lives in ``services.audit`` and never calls a model.
"""
