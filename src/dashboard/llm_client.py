"""
LLM client -- one entry point, several backends.

Backends:
  mock      -- no model at all; always reports itself unavailable so the
               deterministic generators take over
  openai    -- OpenAI Chat Completions SDK
  anthropic -- Anthropic Messages SDK
  gateway   -- any OpenAI-compatible chat-completions URL, called with httpx

SDKs are imported only when their backend is selected.  Gateway HTTP
failures surface as :class:`LLMHTTPError` carrying the status code, which
lets the collaborator tell rate limiting (429) and exhausted credits (402)
from other failures.
"""
from __future__ import annotations

import importlib
from types import ModuleType
from typing import Callable

import httpx

from src.core.config import Settings, get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

OPENAI_MODEL = "gpt-4o-mini"
ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_SYSTEM_PROMPT = "You are an expert data analyst who designs dashboards."


class LLMUnavailable(RuntimeError):
    """No usable model: mock backend, missing credentials or missing SDK."""


class LLMHTTPError(RuntimeError):
    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"LLM gateway returned HTTP {status_code}: {detail[:200]}")
        self.status_code = status_code


def _credential(settings: Settings, field: str) -> str:
    value = getattr(settings, field)
    if not value:
        raise LLMUnavailable(
            f"{field} is not set; export {field.upper()} or add it to .env"
        )
    return value


def _sdk(name: str) -> ModuleType:
    try:
        return importlib.import_module(name)
    except ImportError as exc:
        raise LLMUnavailable(
            f"Backend '{name}' needs its SDK: pip install 'prompt-dashboard-builder[{name}]'"
        ) from exc


def _chat(system: str, prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]


# ── Backends ────────────────────────────────────────────


def _mock(prompt: str, system: str, settings: Settings) -> str:
    raise LLMUnavailable("llm_provider is 'mock'; no model configured")


def _openai(prompt: str, system: str, settings: Settings) -> str:
    key = _credential(settings, "openai_api_key")
    client = _sdk("openai").OpenAI(api_key=key, timeout=settings.llm_timeout_seconds)
    completion = client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=_chat(system, prompt),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    return completion.choices[0].message.content or ""


def _anthropic(prompt: str, system: str, settings: Settings) -> str:
    key = _credential(settings, "anthropic_api_key")
    client = _sdk("anthropic").Anthropic(api_key=key, timeout=settings.llm_timeout_seconds)
    message = client.messages.create(
        model=ANTHROPIC_MODEL,
        system=system,
        messages=[{"role": "user", "content": prompt}],
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    return message.content[0].text if message.content else ""


def _gateway(prompt: str, system: str, settings: Settings) -> str:
    key = _credential(settings, "llm_gateway_api_key")
    response = httpx.post(
        settings.llm_gateway_url,
        headers={"Authorization": f"Bearer {key}"},
        json={
            "model": settings.llm_gateway_model,
            "messages": _chat(system, prompt),
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
        },
        timeout=settings.llm_timeout_seconds,
    )
    if response.status_code != 200:
        raise LLMHTTPError(response.status_code, response.text)
    choices = response.json().get("choices") or [{}]
    return choices[0].get("message", {}).get("content") or ""


BACKENDS: dict[str, Callable[[str, str, Settings], str]] = {
    "mock": _mock,
    "openai": _openai,
    "anthropic": _anthropic,
    "gateway": _gateway,
}


def call_llm(prompt: str, provider: str | None = None, system: str | None = None) -> str:
    """Complete *prompt* with the configured backend (or *provider* when given).

    Raises :class:`LLMUnavailable` when the backend cannot run,
    :class:`LLMHTTPError` for gateway HTTP failures and
    ``NotImplementedError`` for an unknown backend name.
    """
    settings = get_settings()
    name = (provider or settings.llm_provider).lower()
    backend = BACKENDS.get(name)
    if backend is None:
        raise NotImplementedError(
            f"LLM provider '{name}' is not supported (known: {', '.join(BACKENDS)})"
        )

    logger.info("LLM call | backend=%s prompt_chars=%d", name, len(prompt))
    text = backend(prompt, system or DEFAULT_SYSTEM_PROMPT, settings)
    logger.info("LLM reply | backend=%s chars=%d", name, len(text))
    return text
