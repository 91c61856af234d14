"""High-level client coordinating request composition, transport and response wrapping."""
from __future__ import annotations

import copy
import dataclasses
import logging
from typing import Any, Mapping, Optional, Union

from ..models.types import OrchestrationModuleConfig, Prompt, ResourceGroupConfig
from .cancellation import CancellationToken
from .completion_request import construct_completion_post_request
from .deployment import DeploymentResolver
from .response import OrchestrationResponse
from .stream import OrchestrationStream
from .transport import Endpoint, HttpTransport, RequestConfig

logger = logging.getLogger(__name__)

ORCHESTRATION_SCENARIO_ID = "orchestration"


class OrchestrationClient:
    """Facade that sends completion requests to an orchestration deployment."""

    def __init__(
        self,
        config: Union[OrchestrationModuleConfig, Mapping[str, Any]],
        deployment_config: Optional[ResourceGroupConfig] = None,
        *,
        transport: Optional[HttpTransport] = None,
        deployment_resolver: Optional[DeploymentResolver] = None,
    ) -> None:
        if isinstance(config, OrchestrationModuleConfig):
            self._config: Union[OrchestrationModuleConfig, Mapping[str, Any]] = config.model_copy(deep=True)
        else:
            # Validated per call so configuration errors surface when a request is made.
            self._config = copy.deepcopy(dict(config))
        self._deployment_config = deployment_config or ResourceGroupConfig()
        self._transport = transport or HttpTransport()
        self._deployment_resolver = deployment_resolver or DeploymentResolver(self._transport)

    async def _endpoint(self) -> Endpoint:
        resource_group = self._deployment_config.resource_group
        deployment_id = self._deployment_config.deployment_id
        if not deployment_id:
            deployment_id = await self._deployment_resolver.resolve(
                scenario_id=ORCHESTRATION_SCENARIO_ID,
                resource_group=resource_group,
            )
        return Endpoint(url=f"/inference/deployments/{deployment_id}/completion", resource_group=resource_group)

    async def chat_completion(
        self,
        prompt: Union[Prompt, Mapping[str, Any], None] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> OrchestrationResponse:
        """Create a completion for the prompt and wait for the full result."""

        body = construct_completion_post_request(self._config, prompt)
        endpoint = await self._endpoint()
        response = await self._transport.execute(endpoint, body, request_config)
        result = OrchestrationResponse(response)
        logger.info("Completion %s finished (%s)", result.request_id, result.get_finish_reason())
        return result

    async def create_stream(
        self,
        controller: CancellationToken,
        prompt: Union[Prompt, Mapping[str, Any], None] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> OrchestrationStream:
        """Start a streamed completion bound to `controller`.

        Cancelling the controller aborts the request while it is in flight and
        stops the returned stream at its next chunk.
        """

        body = construct_completion_post_request(self._config, prompt, stream=True)
        endpoint = await self._endpoint()
        bound_config = dataclasses.replace(request_config or RequestConfig(), cancellation=controller)
        source = await self._transport.open_stream(endpoint, body, bound_config)
        return OrchestrationStream(source, controller)

    async def stream(
        self,
        prompt: Union[Prompt, Mapping[str, Any], None] = None,
        request_config: Optional[RequestConfig] = None,
        controller: Optional[CancellationToken] = None,
    ) -> OrchestrationStream:
        """Start a streamed completion, creating a cancellation token if none is given."""

        return await self.create_stream(controller or CancellationToken(), prompt, request_config)
