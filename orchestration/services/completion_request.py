"""Build the completion request body from module configuration and a prompt."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..errors import OrchestrationConfigError
from ..models.types import ModuleConfig, OrchestrationModuleConfig, Prompt

# Optional modules, in the order the service documents them.
_OPTIONAL_MODULES = (
    ("filtering", "filtering_module_config"),
    ("masking", "masking_module_config"),
    ("grounding", "grounding_module_config"),
)


def _coerce_config(
    config: Union[OrchestrationModuleConfig, Mapping[str, Any]],
) -> OrchestrationModuleConfig:
    if isinstance(config, OrchestrationModuleConfig):
        return config
    try:
        return OrchestrationModuleConfig.model_validate(config)
    except ValidationError as exc:
        raise OrchestrationConfigError(f"Invalid orchestration module configuration: {exc}") from exc


def _coerce_prompt(prompt: Union[Prompt, Mapping[str, Any], None]) -> Optional[Prompt]:
    if prompt is None or isinstance(prompt, Prompt):
        return prompt
    try:
        return Prompt.model_validate(prompt)
    except ValidationError as exc:
        raise OrchestrationConfigError(f"Invalid prompt: {exc}") from exc


def construct_completion_post_request(
    config: Union[OrchestrationModuleConfig, Mapping[str, Any]],
    prompt: Union[Prompt, Mapping[str, Any], None] = None,
    stream: bool = False,
) -> Dict[str, Any]:
    """Merge the static module configuration with a per-call prompt.

    The service treats the presence of a `*_module_config` key as "module
    enabled", so optional modules are only added when their serialized config
    has at least one key. Prompt fields are added when they are not None, even
    if empty.
    """

    module_config = _coerce_config(config)
    call_prompt = _coerce_prompt(prompt)

    module_configurations: Dict[str, Any] = {
        "templating_module_config": {
            "template": [message.model_dump() for message in module_config.templating.template],
        },
        "llm_module_config": module_config.llm.to_wire(),
    }
    for attribute, wire_key in _OPTIONAL_MODULES:
        optional: Optional[ModuleConfig] = getattr(module_config, attribute)
        if optional is None:
            continue
        serialized = optional.to_wire()
        if serialized:
            module_configurations[wire_key] = serialized

    body: Dict[str, Any] = {
        "orchestration_config": {
            "stream": stream,
            "module_configurations": module_configurations,
        },
    }
    if call_prompt is not None:
        if call_prompt.input_params is not None:
            body["input_params"] = dict(call_prompt.input_params)
        if call_prompt.messages_history is not None:
            body["messages_history"] = [message.model_dump() for message in call_prompt.messages_history]
    return body
