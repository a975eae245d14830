from types import SimpleNamespace

import openai
import pytest

from device_agent.agents.model_client import UITarsModel, to_openai_messages
from device_agent.core.config import ModelConfig
from device_agent.core.errors import TransportError
from device_agent.core.models import ConversationTurn, Role


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def conversation():
    return [
        ConversationTurn(from_=Role.HUMAN, value="open settings"),
        ConversationTurn(from_=Role.HUMAN, value="<image>", screenshot_base64="iVBORold"),
        ConversationTurn(from_=Role.AGENT, value="Action: wait()"),
        ConversationTurn(from_=Role.HUMAN, value="<image>", screenshot_base64="/9j/new"),
    ]


def test_messages_interleave_images_in_order():
    messages = to_openai_messages(conversation(), ["iVBORold", "/9j/new"], "system text")

    assert [m["role"] for m in messages] == ["system", "user", "user", "assistant", "user"]
    assert messages[1]["content"] == "open settings"
    assert messages[2]["content"][0]["image_url"]["url"] == "data:image/png;base64,iVBORold"
    assert messages[3]["content"] == "Action: wait()"
    assert messages[4]["content"][0]["image_url"]["url"] == "data:image/jpeg;base64,/9j/new"


def test_invoke_returns_prediction_and_uses_config():
    completions = FakeCompletions(content="Action: finished()")
    config = ModelConfig(model="ui-tars-7b", max_tokens=500, top_p=0.5)
    model = UITarsModel(config, client=fake_client(completions))

    out = model.invoke(conversation(), ["iVBORold", "/9j/new"], "sys")

    assert out.prediction == "Action: finished()"
    assert out.cost_ms >= 0
    request = completions.requests[0]
    assert request["model"] == "ui-tars-7b"
    assert request["max_tokens"] == 500
    assert request["top_p"] == 0.5
    assert request["messages"][0] == {"role": "system", "content": "sys"}


def test_empty_prediction_is_a_transport_error():
    model = UITarsModel(ModelConfig(), client=fake_client(FakeCompletions(content="")))
    with pytest.raises(TransportError):
        model.invoke(conversation(), [], None)


def test_sdk_errors_become_transport_errors():
    error = openai.OpenAIError("connection refused")
    model = UITarsModel(ModelConfig(), client=fake_client(FakeCompletions(error=error)))
    with pytest.raises(TransportError):
        model.invoke(conversation(), [], None)


def test_invoke_text_only():
    completions = FakeCompletions(content='{"steps": []}')
    model = UITarsModel(ModelConfig(), client=fake_client(completions))
    assert model.invoke_text_only("plan it", "do x") == '{"steps": []}'
    assert completions.requests[0]["messages"][1] == {"role": "user", "content": "do x"}


def test_client_built_lazily_without_sdk_retries():
    model = UITarsModel(ModelConfig(base_url="http://localhost:8000/v1", timeout=5))
    client = model.client
    assert client.max_retries == 0
    assert str(client.base_url).startswith("http://localhost:8000/v1")
