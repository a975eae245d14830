# device_agent/agents/model_client.py
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from device_agent.core.config import ModelConfig
from device_agent.core.errors import TransportError
from device_agent.core.models import ConversationTurn, Role

logger = logging.getLogger(__name__)


class InvokeOutput(BaseModel):
    prediction: str
    cost_ms: float


def _image_mime(b64: str) -> str:
    if b64.startswith("iVBOR"):
        return "image/png"
    if b64.startswith("/9j/"):
        return "image/jpeg"
    return "image/png"


def to_openai_messages(
    conversations: Sequence[ConversationTurn],
    images: Sequence[str],
    system_prompt: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Chat-completions messages for a conversation. Human turns that carried a
    screenshot consume the next entry of `images`, in order.
    """
    messages: List[Dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    pending = list(images)
    for turn in conversations:
        if turn.from_ == Role.AGENT:
            messages.append({"role": "assistant", "content": turn.value})
            continue
        if turn.screenshot_base64 is not None and pending:
            b64 = pending.pop(0)
            messages.append({
                "role": "user",
                "content": [{
                    "type": "image_url",
                    "image_url": {"url": f"data:{_image_mime(b64)};base64,{b64}"},
                }],
            })
        else:
            messages.append({"role": "user", "content": turn.value})
    return messages


class UITarsModel:
    """
    VLM behind an OpenAI-compatible chat-completions endpoint.
    The SDK's own retries are disabled; the agent's retry budget decides.
    """

    def __init__(self, config: ModelConfig, client: Optional[OpenAI] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                base_url=self.config.base_url,
                api_key=self.config.api_key or "EMPTY",
                max_retries=0,
                timeout=self.config.timeout,
            )
        return self._client

    @property
    def model_name(self) -> str:
        return self.config.model or "unknown"

    def _complete(self, messages: List[Dict[str, Any]]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                stream=False,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
        except OpenAIError as e:
            raise TransportError(f"model call failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def invoke(
        self,
        conversations: Sequence[ConversationTurn],
        images: Sequence[str],
        system_prompt: Optional[str] = None,
    ) -> InvokeOutput:
        messages = to_openai_messages(conversations, images, system_prompt)

        start = time.time()
        try:
            prediction = self._complete(messages)
        finally:
            logger.info("[UITarsModel cost]: %dms", (time.time() - start) * 1000)

        if not prediction:
            logger.error("[UITarsModel] empty prediction from %s", self.model_name)
            raise TransportError("vlm response error: empty prediction")

        return InvokeOutput(prediction=prediction, cost_ms=(time.time() - start) * 1000)

    def invoke_text_only(self, system_prompt: str, user_message: str) -> str:
        """Plain text call, no screenshots."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        start = time.time()
        try:
            return self._complete(messages)
        finally:
            logger.info("[UITarsModel TextOnly cost]: %dms", (time.time() - start) * 1000)
