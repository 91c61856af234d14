from __future__ import annotations

import pytest

from orchestration.errors import OrchestrationConfigError
from orchestration.models.types import (
    FilteringConfig,
    FilteringModuleConfig,
    GroundingModuleConfig,
    MaskingModuleConfig,
    OrchestrationModuleConfig,
    Prompt,
    azure_content_filter,
)
from orchestration.services.completion_request import construct_completion_post_request

TEMPLATE = [{"role": "user", "content": "Answer the question: {{?question}}"}]
LLM = {"model_name": "gpt-4o", "model_params": {"max_tokens": 50, "temperature": 0.1}}
OPTIONAL_KEYS = ("filtering_module_config", "masking_module_config", "grounding_module_config")


def _config(**modules) -> OrchestrationModuleConfig:  # noqa: ANN003
    return OrchestrationModuleConfig(templating={"template": TEMPLATE}, llm=LLM, **modules)


def test_minimal_config_emits_only_mandatory_modules() -> None:
    body = construct_completion_post_request(_config())

    assert body == {
        "orchestration_config": {
            "stream": False,
            "module_configurations": {
                "templating_module_config": {"template": TEMPLATE},
                "llm_module_config": LLM,
            },
        },
    }


def test_stream_flag_is_forwarded() -> None:
    body = construct_completion_post_request(_config(), stream=True)

    assert body["orchestration_config"]["stream"] is True


@pytest.mark.parametrize(
    "modules",
    [
        {"filtering": {}, "masking": {}, "grounding": {}},
        {"filtering": FilteringModuleConfig(), "masking": MaskingModuleConfig(), "grounding": GroundingModuleConfig()},
        {"filtering": None},
    ],
)
def test_empty_optional_modules_are_omitted(modules) -> None:  # noqa: ANN001
    module_configurations = construct_completion_post_request(_config(**modules))["orchestration_config"][
        "module_configurations"
    ]

    for key in OPTIONAL_KEYS:
        assert key not in module_configurations


def test_non_empty_optional_modules_are_included() -> None:
    filtering = FilteringModuleConfig(
        input=FilteringConfig(filters=[azure_content_filter(hate=0, violence=2)]),
    )
    masking = {
        "masking_providers": [
            {"type": "sap_data_privacy_integration", "method": "anonymization", "entities": [{"type": "profile-email"}]}
        ]
    }
    grounding = {"type": "document_grounding_service", "config": {"input_params": ["question"], "output_param": "ctx"}}

    module_configurations = construct_completion_post_request(
        _config(filtering=filtering, masking=masking, grounding=grounding)
    )["orchestration_config"]["module_configurations"]

    assert module_configurations["filtering_module_config"] == {
        "input": {"filters": [{"type": "azure_content_safety", "config": {"Hate": 0, "Violence": 2}}]}
    }
    assert module_configurations["masking_module_config"] == masking
    assert module_configurations["grounding_module_config"] == grounding


def test_unknown_module_keys_pass_through() -> None:
    module_configurations = construct_completion_post_request(_config(masking={"future_option": True}))[
        "orchestration_config"
    ]["module_configurations"]

    assert module_configurations["masking_module_config"] == {"future_option": True}


def test_absent_prompt_fields_are_omitted() -> None:
    for prompt in (None, Prompt(), {}):
        body = construct_completion_post_request(_config(), prompt)
        assert "input_params" not in body
        assert "messages_history" not in body


def test_present_prompt_fields_are_sent_even_when_empty() -> None:
    body = construct_completion_post_request(_config(), Prompt(input_params={}, messages_history=[]))

    assert body["input_params"] == {}
    assert body["messages_history"] == []


def test_composed_request_recovers_config_and_prompt() -> None:
    history = [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "Hi"},
    ]
    config = _config(masking={"masking_providers": [{"type": "sap_data_privacy_integration"}]})
    prompt = Prompt(input_params={"question": "Why is the sky blue?"}, messages_history=history)

    body = construct_completion_post_request(config, prompt)
    modules = body["orchestration_config"]["module_configurations"]
    recovered_config = OrchestrationModuleConfig(
        templating=modules["templating_module_config"],
        llm=modules["llm_module_config"],
        masking=modules.get("masking_module_config"),
        filtering=modules.get("filtering_module_config"),
        grounding=modules.get("grounding_module_config"),
    )
    recovered_prompt = Prompt(input_params=body["input_params"], messages_history=body["messages_history"])

    assert recovered_config == config
    assert recovered_prompt == prompt


def test_mapping_config_is_validated() -> None:
    body = construct_completion_post_request({"templating": {"template": TEMPLATE}, "llm": LLM})

    assert body["orchestration_config"]["module_configurations"]["llm_module_config"] == LLM


def test_missing_llm_config_fails_fast() -> None:
    with pytest.raises(OrchestrationConfigError):
        construct_completion_post_request({"templating": {"template": TEMPLATE}})


def test_invalid_prompt_fails_fast() -> None:
    with pytest.raises(OrchestrationConfigError):
        construct_completion_post_request(_config(), {"messages_history": [{"content": "no role"}]})


def test_composition_is_pure() -> None:
    config = _config(filtering={"output": {"filters": [{"type": "azure_content_safety"}]}})
    snapshot = config.model_dump()

    first = construct_completion_post_request(config, {"input_params": {"question": "q"}})
    second = construct_completion_post_request(config, {"input_params": {"question": "q"}})

    assert first == second
    assert config.model_dump() == snapshot


def test_azure_content_filter_rejects_unknown_threshold() -> None:
    with pytest.raises(ValueError):
        azure_content_filter(hate=3)
