"""Pydantic models describing orchestration response payloads and stream chunks."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for wire payloads; unknown fields from newer service versions are kept."""

    model_config = ConfigDict(extra="allow")


class ChatMessage(WireModel):
    """A role-tagged message, used for templates, history and templating results."""

    role: str = Field(..., description="Message author role, e.g. system, user, assistant")
    content: str = Field(..., description="Message text")


class TokenUsage(WireModel):
    completion_tokens: int
    prompt_tokens: int
    total_tokens: int


class GenericModuleResult(WireModel):
    """Output of a masking or filtering stage."""

    message: str = Field(..., description="Human readable summary of what the module did")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Module specific details")


class ResponseChatMessage(WireModel):
    role: str = "assistant"
    content: Optional[str] = None


class LLMChoice(WireModel):
    index: int
    message: ResponseChatMessage = Field(default_factory=ResponseChatMessage)
    finish_reason: Optional[str] = None
    logprobs: Optional[Dict[str, Any]] = None


class ModuleResults(WireModel):
    """Results of each module that ran; absent keys mean the module did not run."""

    templating: Optional[List[ChatMessage]] = None
    input_masking: Optional[GenericModuleResult] = None
    input_filtering: Optional[GenericModuleResult] = None
    grounding: Optional[GenericModuleResult] = None
    output_filtering: Optional[GenericModuleResult] = None
    output_unmasking: Optional[List[Dict[str, Any]]] = None


class LLMModuleResult(WireModel):
    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    system_fingerprint: Optional[str] = None
    choices: List[LLMChoice] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None


class CompletionPostResponse(WireModel):
    request_id: Optional[str] = None
    module_results: Optional[ModuleResults] = None
    orchestration_result: LLMModuleResult


class ChatDelta(WireModel):
    role: Optional[str] = None
    content: str = ""


class LLMChoiceStreaming(WireModel):
    index: int
    delta: ChatDelta = Field(default_factory=ChatDelta)
    finish_reason: Optional[str] = None
    logprobs: Optional[Dict[str, Any]] = None


class LLMModuleResultStreaming(WireModel):
    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    system_fingerprint: Optional[str] = None
    choices: List[LLMChoiceStreaming] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None


class CompletionPostResponseStreaming(WireModel):
    """One stream chunk: deltas for any number of choices plus optional usage."""

    request_id: Optional[str] = None
    module_results: Optional[ModuleResults] = None
    orchestration_result: Optional[LLMModuleResultStreaming] = None
