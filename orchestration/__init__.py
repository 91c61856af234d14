"""Client for the orchestration service: request composition, responses and streams."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


_ROOT_DIR = Path(__file__).resolve().parent.parent

# Load base env first, then allow .env.local to override for developer-specific tweaks.
load_dotenv(_ROOT_DIR / ".env")
load_dotenv(_ROOT_DIR / ".env.local", override=True)

from .errors import (  # noqa: E402
    ContentFilteredError,
    DeploymentResolutionError,
    OrchestrationConfigError,
    OrchestrationError,
    OrchestrationResponseError,
    OrchestrationServiceError,
    StreamIntegrityError,
)
from .models.types import (  # noqa: E402
    ChatMessage,
    OrchestrationModuleConfig,
    Prompt,
    ResourceGroupConfig,
)
from .services.cancellation import CancellationToken  # noqa: E402
from .services.completion_request import construct_completion_post_request  # noqa: E402
from .services.orchestration import OrchestrationClient  # noqa: E402
from .services.response import OrchestrationResponse  # noqa: E402
from .services.stream import OrchestrationStream, StreamState  # noqa: E402
from .services.transport import RequestConfig  # noqa: E402

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "ContentFilteredError",
    "DeploymentResolutionError",
    "OrchestrationClient",
    "OrchestrationConfigError",
    "OrchestrationError",
    "OrchestrationModuleConfig",
    "OrchestrationResponse",
    "OrchestrationResponseError",
    "OrchestrationServiceError",
    "OrchestrationStream",
    "Prompt",
    "RequestConfig",
    "ResourceGroupConfig",
    "StreamIntegrityError",
    "StreamState",
    "construct_completion_post_request",
]
