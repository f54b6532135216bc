"""OpenAI and OpenRouter providers.

Both use the official OpenAI Python SDK. OpenRouter speaks the Chat
Completions protocol at its own base URL.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Set

import openai
from openai import OpenAI

from .base import AuthenticationError, BaseProvider, ProviderError, RateLimitError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@contextmanager
def _translate_errors():
    """Map SDK exceptions onto the provider error taxonomy."""
    try:
        yield
    except openai.AuthenticationError as e:
        raise AuthenticationError(str(e)) from e
    except openai.RateLimitError as e:
        raise RateLimitError(str(e)) from e
    except openai.OpenAIError as e:
        raise ProviderError(str(e)) from e


class OpenAIProvider(BaseProvider):
    """Text generation via the Responses API; images via the Images API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        image_model: Optional[str] = None,
        client: Any = None,
        **kwargs: Any,
    ):
        super().__init__(api_key, **kwargs)
        self.model = model
        self.image_model = image_model
        self.client = client or self._make_client()

    def _make_client(self) -> OpenAI:
        return OpenAI(api_key=self.api_key)

    def get_capabilities(self) -> Set[str]:
        caps = {"text", "analysis", "conversation", "streaming"}
        if self.image_model:
            caps.add("image")
        return caps

    def _complete(self, messages: List[Dict[str, str]]) -> str:
        with _translate_errors():
            resp = self.client.responses.create(
                model=self.model,
                input=messages,
                max_output_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        return resp.output_text

    def _stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        with _translate_errors():
            events = self.client.responses.create(
                model=self.model,
                input=messages,
                max_output_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
            for event in events:
                if event.type == "response.output_text.delta" and event.delta:
                    yield event.delta

    def generate_image(self, prompt: str, n: int = 1) -> List[str]:
        if not self.image_model:
            return super().generate_image(prompt, n)
        self.validate_prompt(prompt)
        sanitized = self.sanitize_prompt(prompt)

        def _call() -> List[str]:
            with _translate_errors():
                resp = self.client.images.generate(model=self.image_model, prompt=sanitized, n=n)
            return [d.url or f"data:image/png;base64,{d.b64_json}" for d in resp.data]

        return self.with_retry(_call)


class OpenRouterProvider(OpenAIProvider):
    """Chat Completions against OpenRouter."""

    name = "openrouter"

    def __init__(self, api_key: Optional[str], model: str = "openai/gpt-4o-mini", **kwargs: Any):
        super().__init__(api_key, model=model, **kwargs)

    def _make_client(self) -> OpenAI:
        return OpenAI(
            api_key=self.api_key,
            base_url=OPENROUTER_BASE_URL,
            default_headers={"X-Title": "branchchat"},
        )

    def _complete(self, messages: List[Dict[str, str]]) -> str:
        with _translate_errors():
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        return resp.choices[0].message.content or ""

    def _stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        with _translate_errors():
            chunks = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
            for chunk in chunks:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
