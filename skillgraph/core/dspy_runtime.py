"""Helpers for configuring DSPy language models and embedders from pipeline config."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Sequence

import dspy
import numpy as np

from skillgraph.core.config import EmbeddingConfig, ModelConfig, RoleModelConfig

EmbedFn = Callable[[Sequence[str]], np.ndarray]


class DSPyConfigurationError(RuntimeError):
    """Raised when DSPy cannot be configured for the requested run."""


@dataclass(frozen=True, slots=True)
class DSPyModelHandles:
    """Concrete LM handles provisioned for each role."""

    generator: object
    grader: object
    embed: EmbedFn


def _qualify_model_name(model_name: str, provider: str) -> str:
    if "/" in model_name:
        return model_name
    return f"{provider}/{model_name}"


def _build_lm(
    model_name: str,
    *,
    api_key: str,
    temperature: float,
    max_tokens: int,
    api_base: str | None = None,
    extra_kwargs: Dict[str, Any] | None = None,
) -> object:
    kwargs: Dict[str, Any] = {
        "model": model_name,
        "api_key": api_key,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if api_base:
        kwargs["api_base"] = api_base
    if extra_kwargs:
        kwargs.update(extra_kwargs)
    return dspy.LM(**kwargs)


def _resolve_api_key(api_key_env: str | None, role_name: str) -> str | None:
    preferred_envs = []
    if api_key_env:
        preferred_envs.append(api_key_env)
    preferred_envs.append(f"OPENAI_API_KEY_{role_name.upper()}")
    preferred_envs.append("OPENAI_API_KEY")
    for env_var in preferred_envs:
        if env_var and (value := os.getenv(env_var)):
            return value
    return None


def _resolve_api_base(role_cfg: RoleModelConfig, role_name: str) -> str | None:
    if role_cfg.api_base:
        return role_cfg.api_base
    env_candidates = []
    if role_cfg.api_base_env:
        env_candidates.append(role_cfg.api_base_env)
    env_candidates.append(f"OPENAI_API_BASE_{role_name.upper()}")
    env_candidates.append("OPENAI_API_BASE")
    for env_var in env_candidates:
        if env_var and (value := os.getenv(env_var)):
            return value
    return None


def _build_model_for_role(
    role_cfg: RoleModelConfig,
    role_name: str,
    model_cfg: ModelConfig,
    override_key: str | None,
) -> object:
    if role_cfg.provider != "openai":
        raise DSPyConfigurationError(f"Unsupported provider '{role_cfg.provider}' for role '{role_name}'")

    api_key = override_key or _resolve_api_key(role_cfg.api_key_env, role_name)
    if not api_key:
        expected_env = role_cfg.api_key_env or f"OPENAI_API_KEY_{role_name.upper()}"
        raise DSPyConfigurationError(f"Missing API key for {role_name} models; set {expected_env} or OPENAI_API_KEY.")

    api_base = _resolve_api_base(role_cfg, role_name)
    temperature = role_cfg.temperature if role_cfg.temperature is not None else model_cfg.default_temperature
    max_tokens = role_cfg.max_tokens if role_cfg.max_tokens is not None else model_cfg.default_max_tokens

    return _build_lm(
        _qualify_model_name(role_cfg.model, role_cfg.provider),
        api_key=api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        api_base=api_base,
        extra_kwargs=role_cfg.extra_kwargs,
    )


def build_embedder(embedding_cfg: EmbeddingConfig, *, api_key: str | None = None) -> EmbedFn:
    """Return a callable that maps texts to a 2-D float array, one row per text."""

    resolved_key = api_key or _resolve_api_key(embedding_cfg.api_key_env, "embedding")
    kwargs: Dict[str, Any] = {"batch_size": embedding_cfg.batch_size, "caching": embedding_cfg.caching}
    if resolved_key:
        kwargs["api_key"] = resolved_key
    embedder = dspy.Embedder(embedding_cfg.model, **kwargs)

    def embed(texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, 0), dtype=float)
        vectors = embedder(list(texts))
        return np.asarray(vectors, dtype=float)

    return embed


def configure_dspy_models(model_cfg: ModelConfig, *, api_key: str | None = None) -> DSPyModelHandles:
    """Instantiate DSPy LMs for curriculum generation and activity grading."""

    generator = _build_model_for_role(model_cfg.generator, "generator", model_cfg, api_key)
    grader = _build_model_for_role(model_cfg.grader, "grader", model_cfg, api_key)
    embed = build_embedder(model_cfg.embedding, api_key=api_key)

    dspy.settings.configure(lm=generator)

    return DSPyModelHandles(generator=generator, grader=grader, embed=embed)


__all__ = [
    "DSPyConfigurationError",
    "DSPyModelHandles",
    "EmbedFn",
    "build_embedder",
    "configure_dspy_models",
]
