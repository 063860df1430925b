"""Configuration loader: reads config/settings.yaml and validates.

Provides Pydantic models for each config section (llm, generation,
tracing) and a ``load_settings()`` function that reads YAML, resolves
``${ENV_VAR}`` placeholders from the environment, and validates the result.

If a ``.env`` file exists in the project root, it is loaded automatically
before resolving placeholders, so ``GEMINI_API_KEY=...`` can live in
``.env`` instead of the shell.

Settings are loaded once at startup and passed explicitly into the
services that need them; nothing reads the environment at call time.

Raises ``ValueError`` when required fields are missing or invalid.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")

SUPPORTED_PROVIDERS = ("openai", "gemini", "mock")


class LLMConfig(BaseModel):
    """Generative-AI endpoint configuration."""

    provider: str = Field(
        ...,
        description="LLM provider: openai | gemini | mock",
    )
    model: str = Field(..., description="Model name, e.g. gemini-2.5-flash")
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    max_output_tokens: int = Field(
        default=4096,
        ge=1,
        description="Upper bound on generated tokens per call",
    )
    api_key: str | None = Field(
        default=None,
        description="API key (resolved from env at runtime)",
    )
    base_url: str | None = Field(
        default=None,
        description="Override for the provider's OpenAI-compatible endpoint",
    )

    @model_validator(mode="after")
    def _check_provider(self) -> "LLMConfig":
        """Normalise and validate the provider name."""
        self.provider = self.provider.strip().lower()
        if self.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported LLM provider {self.provider!r}. "
                f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        return self


class GenerationConfig(BaseModel):
    """Problem generation limits."""

    default_count: int = Field(
        default=5,
        ge=1,
        description="Number of problems generated when the caller gives none",
    )
    max_count: int = Field(
        default=50,
        ge=1,
        description="Largest problem count a single request may ask for",
    )

    @model_validator(mode="after")
    def _check_counts(self) -> "GenerationConfig":
        if self.default_count > self.max_count:
            raise ValueError("default_count must not exceed max_count")
        return self


class TracingConfig(BaseModel):
    """Trace output configuration."""

    trace_dir: str = Field(
        default="data/traces",
        description="Directory for trace files",
    )
    trace_file: str = Field(
        default="trace.jsonl",
        description="Trace JSONL filename",
    )

    @property
    def trace_path(self) -> Path:
        """Full path of the trace JSONL file."""
        return Path(self.trace_dir) / self.trace_file


class Settings(BaseModel):
    """Top-level application settings.

    Section ``llm`` is **required**; the rest have defaults.
    """

    llm: LLMConfig
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)


# ---------------------------------------------------------------------------
# YAML loader helpers
# ---------------------------------------------------------------------------


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR}`` placeholders in strings.

    Args:
        value: A scalar, list, or dict (typically parsed from YAML).

    Returns:
        The same structure with environment variables resolved.  Unset
        variables resolve to ``None`` (so Pydantic can apply defaults or
        raise validation errors).
    """
    if isinstance(value, str):
        match = _ENV_VAR_PATTERN.fullmatch(value)
        if match:
            return os.environ.get(match.group(1))

        def _replace(m: re.Match) -> str:
            return os.environ.get(m.group(1), "")

        return _ENV_VAR_PATTERN.sub(_replace, value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_settings(
    path: str | Path = "config/settings.yaml",
    *,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load, resolve, validate, and return application ``Settings``.

    Args:
        path: Path to the YAML configuration file.
        overrides: Optional dict merged on top of the YAML data before
            validation (useful for tests or CLI flags).

    Returns:
        A validated ``Settings`` instance.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If required fields are missing or invalid.
    """
    _load_dotenv_once(path)

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    raw_text = config_path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    resolved = _resolve_env_vars(raw_data)

    if overrides:
        _deep_merge(resolved, overrides)

    # ValidationError is a ValueError subclass; re-raise with a flat message.
    try:
        return Settings(**resolved)
    except Exception as exc:
        raise ValueError(str(exc)) from exc


def _load_dotenv_once(config_path: str | Path) -> None:
    """Load .env from project root once per process.

    Project root is inferred as the parent of the directory containing
    *config_path*.  Also tries the current working directory.
    """
    if getattr(_load_dotenv_once, "_loaded", False):
        return
    resolved = Path(config_path).resolve()
    project_root = resolved.parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv()
    _load_dotenv_once._loaded = True  # type: ignore[attr-defined]


def _deep_merge(base: dict, override: dict) -> None:
    """In-place deep merge *override* into *base*."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
