"""
LLM completion service used by the agents and content generators.
CRITICAL: every call is bounded by LLM_TIMEOUT_SECONDS and every failure,
including a timeout or undecodable JSON, surfaces as LLMError.
"""
import asyncio
import json
import logging
from typing import Optional

from openai import AsyncOpenAI

from capstutor import config

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """The completion service could not produce a usable reply."""


class CompletionService:
    """
    Thin wrapper over the OpenAI chat completions API.

    complete(system, user, json_mode=True) returns a dict; otherwise a str.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = config.OPENAI_MODEL,
        vision_model: str = config.OPENAI_VISION_MODEL,
        timeout: float = config.LLM_TIMEOUT_SECONDS,
    ):
        self._client = client
        self.model = model
        self.vision_model = vision_model
        self.timeout = timeout

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def _create(self, **kwargs) -> str:
        try:
            response = await asyncio.wait_for(
                self._get_client().chat.completions.create(**kwargs),
                timeout=self.timeout,
            )
            content = response.choices[0].message.content
        except asyncio.TimeoutError as e:
            raise LLMError(f"LLM call timed out after {self.timeout}s") from e
        except Exception as e:
            raise LLMError(f"LLM call failed: {e}") from e
        if not content or not content.strip():
            raise LLMError("LLM returned an empty completion")
        return content.strip()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = False,
        temperature: float = 0.5,
        max_tokens: int = 800,
        history: list | None = None,
    ) -> str | dict:
        messages = [{"role": "system", "content": system_prompt}]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": user_prompt})

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        content = await self._create(**kwargs)
        if not json_mode:
            return content

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMError(f"LLM returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LLMError("LLM JSON reply is not an object")
        return data

    async def read_image(self, image_url: str, instruction: str, max_tokens: int = 1000) -> str:
        """Transcribe the text content of an image with the vision model."""
        return await self._create(
            model=self.vision_model,
            max_tokens=max_tokens,
            messages=[
                {
                    "role": "system",
                    "content": (
                        "You are an expert at reading academic content from images, especially "
                        "homework questions, equations, and diagrams. Extract all text accurately, "
                        "preserving mathematical notation as clearly as possible."
                    ),
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": instruction},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                },
            ],
        )
