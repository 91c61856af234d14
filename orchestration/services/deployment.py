"""Deployment lookup: scenario + resource group -> running deployment id."""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import DeploymentResolutionError
from .transport import HttpTransport

logger = logging.getLogger(__name__)

DEPLOYMENTS_PATH = "/lm/deployments"


class DeploymentResolver:
    """Finds a running deployment for a scenario through the AI API."""

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    async def resolve(self, scenario_id: str = "orchestration", resource_group: Optional[str] = None) -> str:
        data: Any = await self._transport.get_json(
            DEPLOYMENTS_PATH,
            params={"scenarioId": scenario_id, "status": "RUNNING"},
            resource_group=resource_group,
        )
        resources = data.get("resources") if isinstance(data, dict) else None
        for resource in resources or []:
            deployment_id = resource.get("id") if isinstance(resource, dict) else None
            if isinstance(deployment_id, str) and deployment_id:
                logger.info(
                    "Resolved %s deployment %s in resource group %s",
                    scenario_id,
                    deployment_id,
                    resource_group or "default",
                )
                return deployment_id
        raise DeploymentResolutionError(
            f"No running deployment found for scenario '{scenario_id}' "
            f"in resource group '{resource_group or 'default'}'",
            scenario_id=scenario_id,
            resource_group=resource_group,
        )
