"""Incremental reassembly of a streamed orchestration completion.

A stream consumes parsed chunks from a chunk source (normally an
`SseChunkStream`) and merges each one into an accumulator as it arrives:

- content deltas are appended per choice index, in arrival order;
- finish reasons, usage, module results and result metadata keep the last
  value seen;
- nothing is buffered beyond the accumulator itself.

Once the source ends, the accessors behave exactly like `OrchestrationResponse`.
If the stream is cancelled or fails, the partial state stays readable and
`is_complete` is False. The chunk source is released exactly once whichever way
the stream ends.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from pydantic import ValidationError

from ..errors import OperationCancelledError, StreamIntegrityError
from ..models.schemas import (
    CompletionPostResponse,
    CompletionPostResponseStreaming,
    LLMChoice,
    LLMModuleResult,
    ModuleResults,
    ResponseChatMessage,
    TokenUsage,
)
from .cancellation import CancellationToken, run_cancellable
from .response import CompletionAccessor

logger = logging.getLogger(__name__)

_END = object()
_RESULT_METADATA = ("id", "object", "created", "model", "system_fingerprint")


class ChunkSource(Protocol):
    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]: ...

    async def aclose(self) -> None: ...


class StreamState(Enum):
    """States for tracking the stream lifecycle."""

    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class OrchestrationStreamChunkResponse:
    """Accessors for a single stream chunk."""

    def __init__(self, data: CompletionPostResponseStreaming) -> None:
        self.data = data

    def _choice(self, choice_index: int):
        result = self.data.orchestration_result
        if result is None:
            return None
        for choice in result.choices:
            if choice.index == choice_index:
                return choice
        return None

    def get_delta_content(self, choice_index: int = 0) -> Optional[str]:
        choice = self._choice(choice_index)
        return choice.delta.content if choice is not None else None

    def get_finish_reason(self, choice_index: int = 0) -> Optional[str]:
        choice = self._choice(choice_index)
        return choice.finish_reason if choice is not None else None

    def get_token_usage(self) -> Optional[TokenUsage]:
        result = self.data.orchestration_result
        return result.usage if result is not None else None


class OrchestrationStream(CompletionAccessor):
    """A completion built up from stream chunks, consumable with `async for`."""

    def __init__(self, source: ChunkSource, controller: Optional[CancellationToken] = None) -> None:
        self._source = source
        self._iterator: AsyncIterator[Dict[str, Any]] = source.__aiter__()
        self.controller = controller or CancellationToken()
        self._state = StreamState.OPEN
        self._released = False
        self.error: Optional[BaseException] = None

        self._request_id: Optional[str] = None
        self._module_results: Dict[str, Any] = {}
        self._metadata: Dict[str, Any] = {}
        self._merged_choices: List[LLMChoice] = []
        self._merged_usage: Optional[TokenUsage] = None
        self._chunk_count = 0

    # -- lifecycle -----------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state is StreamState.CLOSED

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation; the stream stops at its next chunk await."""

        self.controller.cancel(reason)

    async def aclose(self) -> None:
        """Stop consuming and release the chunk source."""

        if self._state is StreamState.OPEN:
            self._state = StreamState.CANCELLED
            logger.info("Stream closed by caller after %s chunks", self._chunk_count)
        await self._release()

    async def __aenter__(self) -> "OrchestrationStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._source.aclose()
        logger.debug("Released stream source (state=%s)", self._state.value)

    async def _finish(self, state: StreamState, error: Optional[BaseException] = None) -> None:
        self._state = state
        self.error = error
        if state is StreamState.CLOSED:
            logger.info("Stream completed after %s chunks", self._chunk_count)
        elif state is StreamState.CANCELLED:
            logger.warning("Stream cancelled after %s chunks", self._chunk_count)
        else:
            logger.warning("Stream failed after %s chunks: %s", self._chunk_count, error)
        await self._release()

    # -- iteration -----------------------------------------------------------

    def __aiter__(self) -> "OrchestrationStream":
        return self

    async def _next_raw(self) -> Any:
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return _END

    async def __anext__(self) -> OrchestrationStreamChunkResponse:
        if self._state is not StreamState.OPEN:
            raise StopAsyncIteration
        try:
            raw = await run_cancellable(self.controller, self._next_raw())
        except OperationCancelledError:
            await self._finish(StreamState.CANCELLED)
            raise StopAsyncIteration
        except asyncio.CancelledError:
            await self._finish(StreamState.CANCELLED)
            raise
        except Exception as exc:
            await self._finish(StreamState.FAILED, exc)
            raise

        if raw is _END:
            await self._finish(StreamState.CLOSED)
            raise StopAsyncIteration

        try:
            chunk = CompletionPostResponseStreaming.model_validate(raw)
        except ValidationError as exc:
            error = StreamIntegrityError(f"Received a malformed stream chunk: {exc}")
            await self._finish(StreamState.FAILED, error)
            raise error from exc

        self._merge(chunk)
        self._chunk_count += 1
        return OrchestrationStreamChunkResponse(chunk)

    async def to_content_stream(self, choice_index: int = 0) -> AsyncIterator[str]:
        """Yield the non-empty content deltas of one choice as they arrive."""

        async for chunk in self:
            delta = chunk.get_delta_content(choice_index)
            if delta:
                yield delta

    async def collect(self) -> "OrchestrationStream":
        """Consume the rest of the stream and return self."""

        async for _ in self:
            pass
        return self

    # -- accumulation --------------------------------------------------------

    def _merge(self, chunk: CompletionPostResponseStreaming) -> None:
        if chunk.request_id:
            self._request_id = chunk.request_id
        if chunk.module_results is not None:
            self._module_results.update(chunk.module_results.model_dump(exclude_none=True))

        result = chunk.orchestration_result
        if result is None:
            return
        for key in _RESULT_METADATA:
            value = getattr(result, key)
            if value is not None:
                self._metadata[key] = value
        if result.usage is not None:
            self._merged_usage = result.usage

        for delta_choice in result.choices:
            choice = self._find_choice(delta_choice.index)
            if choice is None:
                choice = LLMChoice(
                    index=delta_choice.index,
                    message=ResponseChatMessage(role=delta_choice.delta.role or "assistant", content=""),
                )
                self._merged_choices.append(choice)
            elif delta_choice.delta.role:
                choice.message.role = delta_choice.delta.role
            choice.message.content = (choice.message.content or "") + delta_choice.delta.content
            if delta_choice.finish_reason is not None:
                choice.finish_reason = delta_choice.finish_reason
            if delta_choice.logprobs is not None:
                choice.logprobs = delta_choice.logprobs
        logger.debug("Merged chunk %s with %s choice deltas", self._chunk_count, len(result.choices))

    # -- accessors -----------------------------------------------------------

    @property
    def request_id(self) -> Optional[str]:
        return self._request_id

    def _choices(self) -> List[LLMChoice]:
        return self._merged_choices

    def _usage(self) -> Optional[TokenUsage]:
        return self._merged_usage

    def get_module_results(self) -> Optional[ModuleResults]:
        if not self._module_results:
            return None
        return ModuleResults.model_validate(self._module_results)

    @property
    def data(self) -> CompletionPostResponse:
        """The merged state as a regular completion response."""

        return CompletionPostResponse(
            request_id=self._request_id,
            module_results=self.get_module_results(),
            orchestration_result=LLMModuleResult(
                **self._metadata,
                choices=[choice.model_copy(deep=True) for choice in self._merged_choices],
                usage=self._merged_usage,
            ),
        )
