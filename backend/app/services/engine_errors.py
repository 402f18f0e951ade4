"""
Schedule & Bracket Engine errors.

Every rejected engine operation raises one of these. Each carries a stable
``code``, a human-readable ``reason`` and optional structured ``details`` so
callers can render specific recovery guidance. Routes translate them into
HTTP errors via ``app.utils.guards.engine_error_to_http``.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine rejections. Never fatal: fix the data and retry."""

    code = "ENGINE_ERROR"
    status_code = 400

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or {}

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "reason": self.reason, "details": self.details}


class TemplateMissing(EngineError):
    code = "TEMPLATE_MISSING"
    status_code = 422

    def __init__(self, pool_size: int):
        super().__init__(
            f"No round-robin template registered for pool size {pool_size}.",
            {"pool_size": pool_size},
        )
        self.pool_size = pool_size


class InvalidTemplate(EngineError):
    code = "INVALID_TEMPLATE"
    status_code = 422


class PrerequisitesNotMet(EngineError):
    code = "PREREQUISITES_NOT_MET"
    status_code = 422

    def __init__(self, reason: str, report: Any):
        super().__init__(reason, {"report": report.to_dict()})
        self.report = report


class InvalidSeedAssignment(EngineError):
    code = "INVALID_SEED_ASSIGNMENT"
    status_code = 422


class InvalidMatchResult(EngineError):
    code = "INVALID_MATCH_RESULT"
    status_code = 422


class BracketSizeError(EngineError):
    code = "BRACKET_SIZE_UNSUPPORTED"
    status_code = 422


class ConflictError(EngineError):
    """Guard violation: the caller must confirm or stop, never silently overwrite."""

    code = "CONFLICT"
    status_code = 409


class DuplicateScheduleError(ConflictError):
    code = "DUPLICATE_SCHEDULE"


class BracketExistsError(ConflictError):
    code = "BRACKET_EXISTS"


class RebuildBlockedError(ConflictError):
    code = "REBUILD_BLOCKED"
