"""
Error taxonomy for the experimentation engine.

Configuration, state and not-found failures are distinct classes so callers
can tell "doesn't exist" from "wrong state". Exclusion from an experiment is
not an error and has no class here (see schema.Excluded).
"""

from typing import Any, Dict, Optional


class ExperimentError(Exception):
    """Base class for all engine errors."""

    code = "experiment_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for transports."""
        return {"error": self.code, "message": self.message}


class ConfigurationError(ExperimentError, ValueError):
    """Invalid experiment configuration or invalid input value."""

    code = "configuration_error"


class StateConflictError(ExperimentError):
    """Operation is not valid in the experiment's current status."""

    code = "state_conflict"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["current_status"] = self.current_status
        return d


class NotFoundError(ExperimentError, LookupError):
    """Unknown experiment, variant or assignment id."""

    code = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind.capitalize()} {identifier} not found")
        self.kind = kind
        self.identifier = identifier

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["kind"] = self.kind
        d["id"] = self.identifier
        return d
