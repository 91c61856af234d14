"""Exception hierarchy raised by the orchestration client."""
from __future__ import annotations

from typing import Any, Dict, Optional


class OrchestrationError(Exception):
    """Base class for errors raised by this package."""


class OrchestrationConfigError(OrchestrationError, ValueError):
    """Module configuration is missing mandatory parts or is malformed."""


class DeploymentResolutionError(OrchestrationError):
    """No running deployment matched the scenario and resource group."""

    def __init__(self, message: str, *, scenario_id: str, resource_group: Optional[str]) -> None:
        super().__init__(message)
        self.scenario_id = scenario_id
        self.resource_group = resource_group


class ContentFilteredError(OrchestrationError):
    """The generated content was removed by the output filter."""

    def __init__(self, choice_index: int) -> None:
        super().__init__(
            "Content generated by the LLM was filtered by the output filter. "
            "Please try again with a different prompt or filter configuration."
        )
        self.choice_index = choice_index


class OrchestrationResponseError(OrchestrationError):
    """A response is missing data the caller asked for or does not match the schema."""


class StreamIntegrityError(OrchestrationError):
    """The chunk sequence was malformed or ended unexpectedly."""


class OrchestrationServiceError(OrchestrationError):
    """The service reported an error inside an otherwise successful stream."""

    def __init__(self, payload: Dict[str, Any]) -> None:
        self.payload = payload
        self.code = payload.get("code")
        self.location = payload.get("location")
        self.request_id = payload.get("request_id")
        message = str(payload.get("message") or "Orchestration service reported an error")
        if self.location:
            message = f"{message} (location: {self.location})"
        super().__init__(message)


class OperationCancelledError(OrchestrationError):
    """An await was abandoned because its cancellation token fired."""
