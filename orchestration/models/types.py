"""Caller-facing configuration types: module configuration, prompt and deployment target."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .schemas import ChatMessage


class ModuleConfig(BaseModel):
    """Base for pipeline module configs; extra keys pass through to the service."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    def to_wire(self) -> Dict[str, Any]:
        """Serialize only the keys the caller actually set."""

        return self.model_dump(exclude_unset=True, exclude_none=True)


class TemplatingModuleConfig(ModuleConfig):
    template: List[ChatMessage] = Field(..., description="Prompt template, may reference {{?name}} inputs")


class LlmModuleConfig(ModuleConfig):
    model_name: str = Field(..., description="Model identifier, e.g. gpt-4o")
    model_params: Dict[str, Any] = Field(default_factory=dict, description="Sampling parameters")
    model_version: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        # model_params is always sent, even when left at its default.
        return self.model_dump(exclude_none=True)


class FilterConfig(ModuleConfig):
    type: str = Field(..., description="Filter provider, e.g. azure_content_safety")
    config: Optional[Dict[str, Any]] = None


class FilteringConfig(ModuleConfig):
    filters: List[FilterConfig] = Field(default_factory=list)


class FilteringModuleConfig(ModuleConfig):
    input: Optional[FilteringConfig] = None
    output: Optional[FilteringConfig] = None


class MaskingModuleConfig(ModuleConfig):
    masking_providers: Optional[List[Dict[str, Any]]] = None


class GroundingModuleConfig(ModuleConfig):
    type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class OrchestrationModuleConfig(BaseModel):
    """Static pipeline configuration, fixed for the lifetime of a client."""

    model_config = ConfigDict(frozen=True)

    templating: TemplatingModuleConfig
    llm: LlmModuleConfig
    filtering: Optional[FilteringModuleConfig] = None
    masking: Optional[MaskingModuleConfig] = None
    grounding: Optional[GroundingModuleConfig] = None


class Prompt(BaseModel):
    """Per-call input. `None` means "not sent"; an empty value is still sent."""

    input_params: Optional[Dict[str, str]] = None
    messages_history: Optional[List[ChatMessage]] = None


class ResourceGroupConfig(BaseModel):
    """Where to find the orchestration deployment."""

    resource_group: Optional[str] = None
    deployment_id: Optional[str] = Field(
        default=None, description="Skip deployment lookup and target this id directly"
    )


def azure_content_filter(
    *,
    hate: Optional[int] = None,
    self_harm: Optional[int] = None,
    sexual: Optional[int] = None,
    violence: Optional[int] = None,
) -> FilterConfig:
    """Build an Azure content safety filter entry.

    Each threshold is one of 0, 2, 4 or 6; unset categories use the service default.
    """

    thresholds = {"Hate": hate, "SelfHarm": self_harm, "Sexual": sexual, "Violence": violence}
    config: Dict[str, int] = {}
    for category, value in thresholds.items():
        if value is None:
            continue
        if value not in (0, 2, 4, 6):
            raise ValueError(f"{category} threshold must be one of 0, 2, 4, 6; got {value}")
        config[category] = value
    if config:
        return FilterConfig(type="azure_content_safety", config=config)
    return FilterConfig(type="azure_content_safety")
