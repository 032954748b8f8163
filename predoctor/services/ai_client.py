"""Text-generation providers behind the OpenAI client.

Two interchangeable providers are supported: OpenAI itself and Groq, which
exposes an OpenAI-compatible API under a different base URL. The
:class:`AiClient` is built once in the application lifespan from
:class:`~predoctor.config.Settings` and injected into request handlers.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any

import httpx
from openai import APITimeoutError, OpenAI, OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from predoctor.config import Settings
from predoctor.metrics import (
    ai_provider_errors_total,
    ai_provider_latency_seconds,
    ai_tokens_used_total,
)
from predoctor.models import SystemSettings
from predoctor.models.system_settings import GLOBAL_SETTINGS_KEY

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "groq")
DEFAULT_PROVIDER = "openai"
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_GROQ_MODEL = "openai/gpt-oss-20b"
# Groq retired these ids; requests with them fail upstream.
DEPRECATED_GROQ_MODELS = frozenset({"llama3-70b-8192", "llama-3-70b-8192", "llama3-8b-8192"})

_API_KEY_ENV = {"openai": "OPENAI_API_KEY", "groq": "GROQ_API_KEY"}


class AssessmentError(Exception):
    """Base class for assessment/provider failures."""


class ProviderConfigError(AssessmentError):
    """Selected provider has no credential or is unknown."""


class ProviderCallError(AssessmentError):
    """Network/SDK failure while calling the provider."""


class ProviderTimeout(ProviderCallError, TimeoutError):
    pass


class MalformedProviderResponse(AssessmentError, ValueError):
    """Provider answered, but not with the JSON shape we require."""


@dataclass(frozen=True)
class EffectiveAiConfig:
    provider: str
    openai_model: str
    groq_model: str

    @property
    def model(self) -> str:
        return self.groq_model if self.provider == "groq" else self.openai_model


@dataclass(frozen=True)
class ProviderReply:
    text: str
    total_tokens: int


def _build_http_client() -> httpx.Client | None:
    mounts: dict[str, httpx.HTTPTransport] = {}
    http_proxy = os.environ.get("HTTP_PROXY")
    https_proxy = os.environ.get("HTTPS_PROXY")
    if http_proxy:
        mounts["http://"] = httpx.HTTPTransport(proxy=http_proxy)
    if https_proxy:
        mounts["https://"] = httpx.HTTPTransport(proxy=https_proxy)
    return httpx.Client(mounts=mounts) if mounts else None


class AiClient:
    """Holds one SDK client per configured provider."""

    def __init__(
        self,
        clients: dict[str, Any],
        *,
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._clients = dict(clients)
        self._timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AiClient":
        http_client = _build_http_client()
        clients: dict[str, Any] = {}
        if cfg.openai_api_key:
            clients["openai"] = OpenAI(api_key=cfg.openai_api_key, http_client=http_client)
        if cfg.groq_api_key:
            clients["groq"] = OpenAI(
                api_key=cfg.groq_api_key,
                base_url=cfg.groq_base_url,
                http_client=http_client,
            )
        if not clients:
            logger.warning("No AI provider API key configured")
        return cls(clients, timeout=cfg.ai_timeout_seconds, http_client=http_client)

    def is_configured(self, provider: str) -> bool:
        return provider in self._clients

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
        self._http_client = None
        self._clients.clear()

    def _client_for(self, provider: str) -> Any:
        if provider not in PROVIDERS:
            raise ProviderConfigError(f"Unsupported AI provider: {provider}")
        client = self._clients.get(provider)
        if client is None:
            other = "Groq" if provider == "openai" else "OpenAI"
            raise ProviderConfigError(
                f"{provider} API key not configured. Please set {_API_KEY_ENV[provider]} "
                f"or switch to the {other} provider in platform settings."
            )
        return client

    def complete(
        self,
        provider: str,
        *,
        model: str,
        system: str,
        user: str,
        temperature: float,
        json_mode: bool = True,
    ) -> ProviderReply:
        """Send one system+user exchange and return the generated text."""
        client = self._client_for(provider)
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "timeout": self._timeout,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        started = time.perf_counter()
        try:
            response = client.chat.completions.create(**kwargs)
        except APITimeoutError as exc:
            ai_provider_errors_total.labels(provider=provider, kind="timeout").inc()
            raise ProviderTimeout(f"{provider} request timed out") from exc
        except OpenAIError as exc:
            ai_provider_errors_total.labels(provider=provider, kind="error").inc()
            raise ProviderCallError(f"{provider} request failed") from exc
        finally:
            ai_provider_latency_seconds.labels(provider=provider).observe(
                time.perf_counter() - started
            )

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            ai_provider_errors_total.labels(provider=provider, kind="malformed").inc()
            raise MalformedProviderResponse("AI response missing content") from exc
        if not content:
            ai_provider_errors_total.labels(provider=provider, kind="malformed").inc()
            raise MalformedProviderResponse("AI response missing content")

        usage = getattr(response, "usage", None)
        tokens = int(getattr(usage, "total_tokens", 0) or 0)
        if tokens:
            ai_tokens_used_total.labels(provider=provider).inc(tokens)
        return ProviderReply(text=content, total_tokens=tokens)


def _get_global_settings(db: Session) -> SystemSettings | None:
    return (
        db.query(SystemSettings)
        .filter(SystemSettings.key == GLOBAL_SETTINGS_KEY)
        .one_or_none()
    )


def get_effective_ai_config(db: Session, cfg: Settings) -> EffectiveAiConfig:
    """Resolve provider/model: platform settings -> environment -> defaults."""
    row = _get_global_settings(db)

    provider = (row.ai_provider if row else None) or cfg.ai_provider or DEFAULT_PROVIDER
    openai_model = (row.openai_model if row else None) or cfg.openai_model or DEFAULT_OPENAI_MODEL
    groq_model = (row.groq_model if row else None) or cfg.groq_model or DEFAULT_GROQ_MODEL

    if groq_model in DEPRECATED_GROQ_MODELS:
        logger.warning("Replacing deprecated Groq model %s with %s", groq_model, DEFAULT_GROQ_MODEL)
        groq_model = DEFAULT_GROQ_MODEL
        if row is not None:
            row.groq_model = groq_model
            try:
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Failed to update deprecated model: %s", exc)

    return EffectiveAiConfig(
        provider=provider.strip().lower(),
        openai_model=openai_model,
        groq_model=groq_model,
    )


def update_global_ai_settings(
    db: Session,
    *,
    ai_provider: str | None = None,
    openai_model: str | None = None,
    groq_model: str | None = None,
) -> SystemSettings:
    if ai_provider is not None and ai_provider not in PROVIDERS:
        raise ValueError(f"ai_provider must be one of {', '.join(PROVIDERS)}")
    row = _get_global_settings(db)
    if row is None:
        row = SystemSettings(key=GLOBAL_SETTINGS_KEY)
        db.add(row)
    if ai_provider is not None:
        row.ai_provider = ai_provider
    if openai_model is not None:
        row.openai_model = openai_model.strip() or None
    if groq_model is not None:
        row.groq_model = groq_model.strip() or None
    db.commit()
    db.refresh(row)
    return row


__all__ = [
    "AiClient",
    "AssessmentError",
    "EffectiveAiConfig",
    "MalformedProviderResponse",
    "ProviderCallError",
    "ProviderConfigError",
    "ProviderReply",
    "ProviderTimeout",
    "PROVIDERS",
    "DEPRECATED_GROQ_MODELS",
    "get_effective_ai_config",
    "update_global_ai_settings",
]
