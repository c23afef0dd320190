from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatcal.agent import llm_provider
from chatcal.agent.llm_provider import _join_text_parts, resolve_provider, run_json_completion
from chatcal.agent.nlu import LlmNluClient, NluError

from conftest import run


def _json_call(model="gpt-5-mini"):
    return run_json_completion(model=model, system_prompt="Return json.", developer_prompt=None,
                               user_payload={"message": "hi"}, max_completion_tokens=100)


def test_provider_follows_model_name_unless_forced(mocker):
    assert resolve_provider("gpt-5-mini") == "openai"
    assert resolve_provider("gemini-flash-latest") == "gemini"
    assert resolve_provider("models/gemini-2.5-pro") == "gemini"
    mocker.patch.object(llm_provider, "LLM_PROVIDER", "openai")
    assert resolve_provider("gemini-flash-latest") == "openai"


def test_text_parts_are_joined():
    assert _join_text_parts("  plain ") == "plain"
    assert _join_text_parts([{"text": "a"}, "b", SimpleNamespace(text="c"), {"text": " "}]) == "a b c"
    assert _join_text_parts(None) == ""


def test_missing_client_is_reported_unavailable(mocker):
    mocker.patch.object(llm_provider, "get_async_client",
                        side_effect=RuntimeError("OPENAI_API_KEY is not set"))
    parsed, raw, meta = run(_json_call())
    assert parsed is None
    assert raw == ""
    assert meta["available"] is False
    assert meta["error"] == "OPENAI_API_KEY is not set"


def test_openai_json_completion_is_parsed(mocker):
    client = MagicMock()
    message = SimpleNamespace(content='```json\n{"intent": "help_request"}\n```')
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    mocker.patch.object(llm_provider, "get_async_client", return_value=client)

    parsed, _raw, meta = run(_json_call())

    assert parsed == {"intent": "help_request"}
    assert meta == {"model": "gpt-5-mini", "provider": "openai", "available": True, "error": None}
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}


def test_provider_exception_is_captured_in_meta(mocker):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=TimeoutError("slow"))
    mocker.patch.object(llm_provider, "get_async_client", return_value=client)

    parsed, _raw, meta = run(_json_call())

    assert parsed is None
    assert meta["available"] is True
    assert meta["error"] == "slow"


def test_nlu_client_raises_on_failed_completion(mocker):
    mocker.patch("chatcal.agent.nlu.run_json_completion",
                 return_value=(None, "", {"model": "m", "provider": "openai",
                                          "available": True, "error": "empty output"}))
    with pytest.raises(NluError, match="empty output"):
        run(LlmNluClient(model="m").extract_intent("prompt", "hi", []))
