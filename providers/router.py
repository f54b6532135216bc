"""Provider selection by name or capability."""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .base import BaseProvider, ProviderError, UnknownProviderError

logger = logging.getLogger("branchchat.providers")

ProviderFactory = Callable[[], BaseProvider]


class ProviderRouter:
    """
    Lazily builds and caches providers from registered factories.

    A factory may raise ``ProviderError`` (typically a missing API key); such
    a provider is treated as unavailable and never cached.
    """

    def __init__(self, factories: Dict[str, ProviderFactory], default: str):
        if default not in factories:
            raise UnknownProviderError(f"Unknown default provider: {default}")
        self._factories = dict(factories)
        self._providers: Dict[str, BaseProvider] = {}
        self.default = default

    @property
    def names(self) -> List[str]:
        return list(self._factories)

    def get_provider(self, name: str) -> BaseProvider:
        if name not in self._factories:
            raise UnknownProviderError(f"Unknown provider type: {name}")
        if name not in self._providers:
            self._providers[name] = self._factories[name]()
        return self._providers[name]

    def get_provider_with_fallback(self, primary: str, fallback: str) -> BaseProvider:
        try:
            return self.get_provider(primary)
        except ProviderError as e:
            logger.warning("Failed to get primary provider %s, falling back to %s: %s", primary, fallback, e)
            return self.get_provider(fallback)

    def is_available(self, name: str) -> bool:
        try:
            self.get_provider(name)
        except ProviderError:
            return False
        return True

    def available_providers(self) -> List[str]:
        return [n for n in self._factories if self.is_available(n)]

    def get_best_provider(self, capabilities: Iterable[str]) -> BaseProvider:
        """
        Pick a provider for the wanted capability tags.

        Prefers one supporting all of them, then one supporting any of them,
        then the default provider.
        """
        wanted = set(capabilities)
        candidates = [self.get_provider(n) for n in self.available_providers()]

        for provider in candidates:
            if wanted <= provider.get_capabilities():
                return provider
        for provider in candidates:
            if wanted & provider.get_capabilities():
                return provider
        return self.get_provider(self.default)

    def capabilities(self, name: str) -> Optional[List[str]]:
        """Sorted capability tags, or None when the provider is unavailable."""
        if not self.is_available(name):
            return None
        return sorted(self.get_provider(name).get_capabilities())

    def clear(self) -> None:
        self._providers.clear()
