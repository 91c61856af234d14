"""Accessors over a completed orchestration response."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from ..errors import ContentFilteredError, OrchestrationResponseError
from ..models.schemas import (
    ChatMessage,
    CompletionPostResponse,
    LLMChoice,
    ModuleResults,
    ResponseChatMessage,
    TokenUsage,
)

logger = logging.getLogger(__name__)

CONTENT_FILTER_FINISH_REASON = "content_filter"


class CompletionAccessor:
    """Choice lookup and content-filter rules shared by responses and streams.

    Subclasses provide the current choices, usage and module results.
    """

    def _choices(self) -> List[LLMChoice]:
        raise NotImplementedError

    def _usage(self) -> Optional[TokenUsage]:
        raise NotImplementedError

    def get_module_results(self) -> Optional[ModuleResults]:
        raise NotImplementedError

    def _find_choice(self, choice_index: int) -> Optional[LLMChoice]:
        # Choices are matched on their index field; list position is not meaningful.
        for choice in self._choices():
            if choice.index == choice_index:
                return choice
        return None

    def get_token_usage(self) -> TokenUsage:
        """Return token usage, raising if the service did not report it."""

        usage = self._usage()
        if usage is None:
            raise OrchestrationResponseError("Token usage is not available for this response")
        return usage

    def get_finish_reason(self, choice_index: int = 0) -> Optional[str]:
        choice = self._find_choice(choice_index)
        return choice.finish_reason if choice is not None else None

    def get_content(self, choice_index: int = 0) -> Optional[str]:
        """Return the message content of a choice.

        Raises ContentFilteredError when the content is empty because the output
        filter removed it, so that case is not mistaken for an empty completion.
        """

        choice = self._find_choice(choice_index)
        if choice is None:
            return None
        content = choice.message.content
        if content == "" and choice.finish_reason == CONTENT_FILTER_FINISH_REASON:
            logger.info("Choice %s was removed by the output filter", choice_index)
            raise ContentFilteredError(choice_index)
        return content

    def get_assistant_message(self, choice_index: int = 0) -> Optional[ResponseChatMessage]:
        choice = self._find_choice(choice_index)
        return choice.message if choice is not None else None

    def get_all_messages(self, choice_index: int = 0) -> List[ChatMessage]:
        """Templated input messages followed by the assistant reply of one choice."""

        messages: List[ChatMessage] = []
        module_results = self.get_module_results()
        if module_results is not None and module_results.templating:
            messages.extend(module_results.templating)
        choice = self._find_choice(choice_index)
        if choice is not None and choice.message.content is not None:
            messages.append(ChatMessage(role=choice.message.role, content=choice.message.content))
        return messages


class OrchestrationResponse(CompletionAccessor):
    """Representation of a non-streaming orchestration response."""

    def __init__(self, raw_response: httpx.Response) -> None:
        self.raw_response = raw_response
        self.data = self._parse(raw_response)

    @staticmethod
    def _parse(raw_response: httpx.Response) -> CompletionPostResponse:
        try:
            payload: Any = raw_response.json()
        except ValueError as exc:
            raise OrchestrationResponseError("Orchestration response body is not valid JSON") from exc
        try:
            return CompletionPostResponse.model_validate(payload)
        except ValidationError as exc:
            raise OrchestrationResponseError(f"Unexpected orchestration response shape: {exc}") from exc

    @property
    def request_id(self) -> Optional[str]:
        return self.data.request_id

    def _choices(self) -> List[LLMChoice]:
        return self.data.orchestration_result.choices

    def _usage(self) -> Optional[TokenUsage]:
        return self.data.orchestration_result.usage

    def get_module_results(self) -> Optional[ModuleResults]:
        return self.data.module_results
