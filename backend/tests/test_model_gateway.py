import asyncio

import pytest

from fakes import ScriptedChatModel, make_gateway
from moodtrip.errors import ProviderUnavailable
from moodtrip.services.model_gateway import Capability, ModelGateway


def test_first_model_success_stops_chain():
    chat = ScriptedChatModel(["  你好  "])
    gateway = make_gateway(chat)

    reply = asyncio.run(gateway.complete("hi"))

    assert reply == "你好"
    assert chat.models_called == ["text-a"]


def test_falls_back_in_order():
    chat = ScriptedChatModel([ProviderUnavailable("text-a", "502"), "第二个模型"])
    gateway = make_gateway(chat)

    reply = asyncio.run(gateway.complete("hi"))

    assert reply == "第二个模型"
    assert chat.models_called == ["text-a", "text-b"]


def test_empty_reply_counts_as_failure():
    chat = ScriptedChatModel(["   ", "ok"])
    gateway = make_gateway(chat)

    assert asyncio.run(gateway.complete("hi")) == "ok"


def test_exhaustion_raises_with_per_model_errors():
    chat = ScriptedChatModel([RuntimeError("boom"), ""])
    gateway = make_gateway(chat)

    with pytest.raises(ProviderUnavailable) as exc_info:
        asyncio.run(gateway.complete("hi"))

    assert exc_info.value.provider == Capability.TEXT_GENERATION.value
    assert len(exc_info.value.errors) == 2
    assert exc_info.value.errors[0].startswith("text-a")


def test_slow_model_times_out_and_next_is_tried():
    async def handler(kind, model, prompt):
        if model == "text-a":
            await asyncio.sleep(1)
        return f"来自 {model}"

    chat = ScriptedChatModel(handler=handler)
    gateway = make_gateway(chat, timeout=0.05)

    assert asyncio.run(gateway.complete("hi")) == "来自 text-b"


def test_no_retry_of_same_model():
    chat = ScriptedChatModel(handler=lambda kind, model, prompt: RuntimeError("down"))
    gateway = make_gateway(chat, text=("only",))

    with pytest.raises(ProviderUnavailable):
        asyncio.run(gateway.complete("hi"))

    assert chat.models_called == ["only"]


def test_vision_capability_uses_image_call():
    chat = ScriptedChatModel(["{}"])
    gateway = make_gateway(chat)

    asyncio.run(gateway.call(Capability.VISION_FEATURES, {"prompt": "看图", "image": "aGk="}))

    assert chat.calls[0][:2] == ("vision", "vision-a")


def test_override_models_and_empty_chain():
    chat = ScriptedChatModel(["ok"])
    gateway = ModelGateway(chat, {Capability.TEXT_GENERATION: []})

    with pytest.raises(ProviderUnavailable):
        asyncio.run(gateway.complete("hi"))

    assert asyncio.run(gateway.complete("hi", models=["custom"])) == "ok"
    assert chat.models_called == ["custom"]
