"""
Model provider tests.

Tests for providers.base, providers.openai_provider and providers.router.
SDK clients are replaced by fakes; nothing touches the network.
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from conftest import FakeProvider
from providers import (
    AuthenticationError,
    BaseProvider,
    InvalidPromptError,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderError,
    ProviderRouter,
    RateLimitError,
    UnknownProviderError,
)


class FlakyProvider(BaseProvider):
    """Fails with the given errors before succeeding."""

    name = "flaky"

    def __init__(self, errors):
        super().__init__("key", retry_delay=0)
        self.errors = list(errors)
        self.attempts = 0

    def _complete(self, messages):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return "  done  "


class FakeResponses:
    def __init__(self, output_text="It is quiet.", events=()):
        self.output_text = output_text
        self.events = list(events)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            return iter(self.events)
        return SimpleNamespace(output_text=self.output_text)


class FakeCompletions:
    def __init__(self, content="It is quiet.", chunks=(), error=None):
        self.content = content
        self.chunks = list(chunks)
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return iter(
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=c))]) for c in self.chunks
            )
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


class FakeImages:
    def __init__(self):
        self.calls = []

    def generate(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[
            SimpleNamespace(url="https://images.example/1.png", b64_json=None),
            SimpleNamespace(url=None, b64_json="aGVsbG8="),
        ])


def _sdk_error(cls, status):
    request = httpx.Request("POST", "https://api.example/v1/responses")
    return cls("boom", response=httpx.Response(status, request=request), body=None)


class TestBaseProvider:
    """Tests for the shared provider behavior."""

    def test_missing_api_key(self):
        with pytest.raises(AuthenticationError):
            OpenAIProvider(None, client=object())

    def test_generate_strips_reply(self):
        assert FlakyProvider([]).generate("hello") == "done"

    def test_empty_prompt_rejected(self):
        with pytest.raises(InvalidPromptError):
            FlakyProvider([]).generate("   ")

    def test_empty_history_rejected(self):
        with pytest.raises(InvalidPromptError):
            FlakyProvider([]).generate_with_history([])

    def test_sanitize_prompt(self):
        assert FlakyProvider([]).sanitize_prompt("<b>look</b>") == "blook/b"

    def test_retries_transient_errors(self):
        """Rate limits are retried until the call succeeds."""
        provider = FlakyProvider([RateLimitError(), ProviderError("503")])

        assert provider.generate("hello") == "done"
        assert provider.attempts == 3

    def test_gives_up_after_max_retries(self):
        provider = FlakyProvider([RateLimitError()] * 3)

        with pytest.raises(RateLimitError):
            provider.generate("hello")
        assert provider.attempts == 3

    def test_single_attempt_when_retries_disabled(self):
        """With max_retries=1 the first transient failure is raised."""
        provider = FlakyProvider([RateLimitError(), RateLimitError()])
        provider.max_retries = 1

        with pytest.raises(RateLimitError):
            provider.generate("hello")
        assert provider.attempts == 1

    def test_authentication_errors_not_retried(self):
        provider = FlakyProvider([AuthenticationError("bad key")])

        with pytest.raises(AuthenticationError):
            provider.generate("hello")
        assert provider.attempts == 1

    def test_default_stream_yields_whole_reply(self):
        assert list(FlakyProvider([]).stream("hello")) == ["  done  "]

    def test_default_capabilities_and_no_images(self):
        provider = FlakyProvider([])

        assert provider.get_capabilities() == {"text"}
        with pytest.raises(ProviderError):
            provider.generate_image("a hallway")


class TestOpenAIProvider:
    """Tests for OpenAIProvider with a fake client."""

    def _provider(self, responses=None, image_model=None):
        client = SimpleNamespace(responses=responses or FakeResponses(), images=FakeImages())
        return OpenAIProvider("sk-test", model="gpt-4o-mini", image_model=image_model, client=client, retry_delay=0)

    def test_generate_with_history(self):
        provider = self._provider()
        messages = [{"role": "system", "content": "narrate"}, {"role": "user", "content": "hi"}]

        assert provider.generate_with_history(messages) == "It is quiet."

        call = provider.client.responses.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["input"] == messages
        assert call["max_output_tokens"] == 1000

    def test_stream_yields_text_deltas(self):
        events = [
            SimpleNamespace(type="response.created"),
            SimpleNamespace(type="response.output_text.delta", delta="The "),
            SimpleNamespace(type="response.output_text.delta", delta="walls."),
            SimpleNamespace(type="response.completed"),
        ]
        provider = self._provider(responses=FakeResponses(events=events))

        assert list(provider.stream("look")) == ["The ", "walls."]

    def test_capabilities(self):
        assert "image" not in self._provider().get_capabilities()
        assert "image" in self._provider(image_model="dall-e-3").get_capabilities()

    def test_generate_image(self):
        provider = self._provider(image_model="dall-e-3")

        images = provider.generate_image("an <empty> office", n=2)

        assert images == ["https://images.example/1.png", "data:image/png;base64,aGVsbG8="]
        assert provider.client.images.calls[0] == {"model": "dall-e-3", "prompt": "an empty office", "n": 2}

    def test_generate_image_without_model(self):
        with pytest.raises(ProviderError):
            self._provider().generate_image("an office")


class TestOpenRouterProvider:
    """Tests for OpenRouterProvider with a fake client."""

    def _provider(self, completions):
        client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
        return OpenRouterProvider("or-test", client=client, retry_delay=0)

    def test_generate(self):
        completions = FakeCompletions(content="A door appears.")

        assert self._provider(completions).generate("hi") == "A door appears."
        assert completions.calls[0]["model"] == "openai/gpt-4o-mini"
        assert completions.calls[0]["messages"] == [{"role": "user", "content": "hi"}]

    def test_stream(self):
        completions = FakeCompletions(chunks=["A ", None, "door."])

        assert list(self._provider(completions).stream("hi")) == ["A ", "door."]

    def test_sdk_rate_limit_is_translated_and_retried(self):
        completions = FakeCompletions(error=_sdk_error(openai.RateLimitError, 429))

        with pytest.raises(RateLimitError):
            self._provider(completions).generate("hi")
        assert len(completions.calls) == 3

    def test_sdk_authentication_error_is_translated(self):
        completions = FakeCompletions(error=_sdk_error(openai.AuthenticationError, 401))

        with pytest.raises(AuthenticationError):
            self._provider(completions).generate("hi")
        assert len(completions.calls) == 1


class TestProviderRouter:
    """Tests for ProviderRouter."""

    def _missing_key(self):
        raise AuthenticationError("no key")

    def test_unknown_default(self):
        with pytest.raises(UnknownProviderError):
            ProviderRouter({"fake": FakeProvider}, default="other")

    def test_unknown_provider(self):
        router = ProviderRouter({"fake": FakeProvider}, default="fake")

        with pytest.raises(UnknownProviderError):
            router.get_provider("claude")

    def test_providers_are_cached(self):
        built = []

        def factory():
            built.append(1)
            return FakeProvider()

        router = ProviderRouter({"fake": factory}, default="fake")

        assert router.get_provider("fake") is router.get_provider("fake")
        assert len(built) == 1

    def test_fallback(self):
        router = ProviderRouter({"primary": self._missing_key, "backup": FakeProvider}, default="backup")

        assert router.get_provider_with_fallback("primary", "backup").name == "fake"
        assert router.available_providers() == ["backup"]
        assert router.capabilities("primary") is None

    def test_best_provider_prefers_full_match(self):
        text_only = FakeProvider(capabilities={"text"})
        images = FakeProvider(capabilities={"text", "image"})
        router = ProviderRouter({"text": lambda: text_only, "images": lambda: images}, default="text")

        assert router.get_best_provider(["text", "image"]) is images

    def test_best_provider_partial_match(self):
        text_only = FakeProvider(capabilities={"text"})
        images = FakeProvider(capabilities={"image"})
        router = ProviderRouter({"text": lambda: text_only, "images": lambda: images}, default="text")

        assert router.get_best_provider(["image", "audio"]) is images

    def test_best_provider_defaults(self):
        text_only = FakeProvider(capabilities={"text"})
        router = ProviderRouter({"text": lambda: text_only, "broken": self._missing_key}, default="text")

        assert router.get_best_provider(["image"]) is text_only
