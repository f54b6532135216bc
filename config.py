"""Environment configuration for branchchat."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from branchstore import WELCOME_MESSAGE, FileAdapter, MemoryAdapter, NullAdapter, PersistenceAdapter

SYSTEM_PROMPT = (
    "You are the narrator of an interactive fiction set in the liminal backrooms. "
    "Maintain an atmosphere of subtle unease and mystery, and describe the "
    "environments in vivid detail."
)

STORAGE_BACKENDS = ("file", "memory", "none")


@dataclass(frozen=True)
class Settings:
    storage: str = "file"
    data_dir: Path = Path("~/.branchchat")
    namespace: str = "branchchat"
    welcome_message: str = WELCOME_MESSAGE
    system_prompt: str = SYSTEM_PROMPT
    default_provider: str = "openai"
    fallback_provider: str = "openrouter"
    model: str = "gpt-4o-mini"
    openrouter_model: str = "openai/gpt-4o-mini"
    image_model: Optional[str] = "dall-e-3"
    max_tokens: int = 1000
    temperature: float = 0.7
    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    log_level: str = "INFO"

    def make_adapter(self) -> PersistenceAdapter:
        if self.storage == "file":
            return FileAdapter(self.data_dir)
        if self.storage == "memory":
            return MemoryAdapter()
        return NullAdapter()


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from the environment. Raises ValueError on bad values."""
    env = os.environ if environ is None else environ

    storage = env.get("BRANCHCHAT_STORAGE", "file").strip().lower()
    if storage not in STORAGE_BACKENDS:
        raise ValueError(f"BRANCHCHAT_STORAGE must be one of {', '.join(STORAGE_BACKENDS)}")

    return Settings(
        storage=storage,
        data_dir=Path(env.get("BRANCHCHAT_DATA_DIR", "~/.branchchat")).expanduser(),
        namespace=env.get("BRANCHCHAT_NAMESPACE", "branchchat"),
        welcome_message=env.get("BRANCHCHAT_WELCOME_MESSAGE", WELCOME_MESSAGE),
        system_prompt=env.get("BRANCHCHAT_SYSTEM_PROMPT", SYSTEM_PROMPT),
        default_provider=env.get("BRANCHCHAT_PROVIDER", "openai"),
        fallback_provider=env.get("BRANCHCHAT_FALLBACK_PROVIDER", "openrouter"),
        model=env.get("BRANCHCHAT_MODEL", "gpt-4o-mini"),
        openrouter_model=env.get("BRANCHCHAT_OPENROUTER_MODEL", "openai/gpt-4o-mini"),
        image_model=env.get("BRANCHCHAT_IMAGE_MODEL", "dall-e-3") or None,
        max_tokens=int(env.get("BRANCHCHAT_MAX_TOKENS", "1000")),
        temperature=float(env.get("BRANCHCHAT_TEMPERATURE", "0.7")),
        openai_api_key=env.get("OPENAI_API_KEY"),
        openrouter_api_key=env.get("OPENROUTER_API_KEY"),
        log_level=env.get("BRANCHCHAT_LOG_LEVEL", "INFO").upper(),
    )
