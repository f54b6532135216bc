"""Provider contract and shared helpers."""

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterator, List, NoReturn, Optional, Set, TypeVar

logger = logging.getLogger("branchchat.providers")

T = TypeVar("T")

MAX_PROMPT_CHARS = 500
_UNSAFE_CHARS_RE = re.compile(r"[<>]")


class ProviderError(Exception):
    """Base class for model provider errors."""


class AuthenticationError(ProviderError):
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class RateLimitError(ProviderError):
    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message)


class InvalidPromptError(ProviderError):
    def __init__(self, message: str = "Invalid prompt provided"):
        super().__init__(message)


class UnknownProviderError(ProviderError):
    pass


# Errors a retry cannot fix
_PERMANENT_ERRORS = (AuthenticationError, InvalidPromptError)


class BaseProvider(ABC):
    """
    Uniform contract for text (and optionally image) generation.

    Subclasses implement ``_complete`` and may override ``_stream``; the
    public methods add prompt validation, retries and error logging.
    """

    name = "base"
    model = ""

    def __init__(
        self,
        api_key: Optional[str],
        max_tokens: int = 1000,
        temperature: float = 0.7,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.api_key = api_key or ""
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.validate_api_key()

    # ----------------------------
    # Contract
    # ----------------------------
    @abstractmethod
    def _complete(self, messages: List[Dict[str, str]]) -> str:
        ...

    def _stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        # Providers without native streaming yield the whole reply at once
        yield self._complete(messages)

    def get_capabilities(self) -> Set[str]:
        return {"text"}

    def generate(self, prompt: str) -> str:
        self.validate_prompt(prompt)
        return self.generate_with_history([{"role": "user", "content": self.sanitize_prompt(prompt)}])

    def generate_with_history(self, messages: List[Dict[str, str]]) -> str:
        if not messages:
            raise InvalidPromptError("Messages must not be empty")
        return self.with_retry(lambda: self._complete(messages)).strip()

    def stream(self, prompt: str) -> Iterator[str]:
        self.validate_prompt(prompt)
        return self.stream_with_history([{"role": "user", "content": self.sanitize_prompt(prompt)}])

    def stream_with_history(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        if not messages:
            raise InvalidPromptError("Messages must not be empty")
        try:
            yield from self._stream(messages)
        except ProviderError as e:
            self.handle_error(e)

    def generate_image(self, prompt: str, n: int = 1) -> List[str]:
        raise ProviderError(f"Provider {self.name!r} does not support image generation")

    # ----------------------------
    # Helpers
    # ----------------------------
    def validate_api_key(self) -> None:
        if not self.api_key:
            raise AuthenticationError(f"API key is required for provider {self.name!r}")

    def validate_prompt(self, prompt: str) -> None:
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidPromptError()

    def sanitize_prompt(self, prompt: str) -> str:
        return _UNSAFE_CHARS_RE.sub("", prompt)

    def handle_error(self, error: Exception) -> NoReturn:
        logger.error("Provider %s error: %s", self.name, error)
        raise error

    def with_retry(self, operation: Callable[[], T]) -> T:
        """Run ``operation``, retrying transient failures with linear backoff."""
        attempt = 1
        while True:
            try:
                return operation()
            except _PERMANENT_ERRORS as e:
                self.handle_error(e)
            except ProviderError as e:
                if attempt >= self.max_retries:
                    self.handle_error(e)
                logger.warning(
                    "Provider %s attempt %d/%d failed: %s",
                    self.name, attempt, self.max_retries, e,
                )
                time.sleep(self.retry_delay * attempt)
                attempt += 1
