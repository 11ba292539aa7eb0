"""Blocking adapters for local model runtimes (OpenAI-compatible HTTP or Ollama CLI)."""

from __future__ import annotations

import ipaddress
import json
import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from ..config import LLMConfig
from ..errors import ConfigurationError, GenerationError

_UNSET = object()

_LOCAL_HOSTS = frozenset(
    {"localhost", "127.0.0.1", "0.0.0.0", "::1", "model-runner.docker.internal"}
)


@dataclass
class LLMRequest:
    """A single completion request handed to the transport."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    executable: Optional[str]
    base_url: Optional[str]
    api_key: Optional[str]
    request_timeout: Optional[float]


Transport = Callable[[LLMRequest], str]


class LLMRunner:
    """Sends prompts to a local model runtime and returns the completion text.

    With a ``base_url`` the runner talks to an OpenAI-compatible
    ``/chat/completions`` endpoint; without one it shells out to ``ollama run``.
    Only loopback or ``.local`` hosts are accepted as endpoints.
    """

    DEFAULT_MODEL = "llama3.1:8b-instruct-q4_K_M"
    DEFAULT_BASE_URL = "http://localhost:11434/v1"
    ENV_MODEL_KEYS = ("MODSPEC_LLM_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = ("MODSPEC_LLM_BASE_URL", "OPENAI_BASE_URL")
    ENV_API_KEY_KEYS = ("MODSPEC_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None | object = _UNSET,
        executable: str = "ollama",
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        api_key: str | None | object = _UNSET,
        request_timeout: Optional[float] = 120.0,
        transport: Transport | None = None,
    ) -> None:
        self.model = model or _first_env(self.ENV_MODEL_KEYS) or self.DEFAULT_MODEL
        if base_url is _UNSET:
            base_url = _first_env(self.ENV_BASE_URL_KEYS) or self.DEFAULT_BASE_URL
        self.base_url = _local_url(str(base_url)) if base_url else None
        self.api_key = _first_env(self.ENV_API_KEY_KEYS) if api_key is _UNSET else api_key
        self.executable = executable
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        if transport is not None:
            self._transport = transport
        elif self.base_url:
            self._transport = http_transport
        else:
            self._transport = cli_transport

    @classmethod
    def from_config(cls, config: LLMConfig | None) -> "LLMRunner":
        if config is None:
            return cls()
        kwargs: dict[str, object] = {}
        if config.runner == "ollama" and not config.base_url:
            kwargs["base_url"] = None
        elif config.base_url:
            kwargs["base_url"] = config.base_url
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.request_timeout is not None:
            kwargs["request_timeout"] = config.request_timeout
        return cls(config.model, max_tokens=config.max_tokens, **kwargs)  # type: ignore[arg-type]

    def run(self, prompt: str, *, system: str | None = None) -> str:
        request = LLMRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            executable=self.executable,
            base_url=self.base_url,
            api_key=self.api_key,  # type: ignore[arg-type]
            request_timeout=self.request_timeout,
        )
        return self._transport(request)


def cli_transport(request: LLMRequest) -> str:
    args = [request.executable or "ollama", "run", request.model]
    if request.system:
        args.extend(["--system", request.system])
    args.append(request.prompt)
    try:
        completed = subprocess.run(
            args,
            check=True,
            capture_output=True,
            text=True,
            timeout=request.request_timeout,
        )
    except FileNotFoundError as exc:  # pragma: no cover - depends on environment
        raise ConfigurationError(
            f"Unable to locate '{request.executable}'. Install Ollama or configure llm.base_url."
        ) from exc
    except subprocess.TimeoutExpired as exc:  # pragma: no cover - depends on environment
        raise GenerationError(f"LLM runner timed out after {exc.timeout}s") from exc
    except subprocess.CalledProcessError as exc:  # pragma: no cover - depends on environment
        raise GenerationError(
            f"LLM runner exited with code {exc.returncode}: {exc.stderr.strip()}"
        ) from exc
    return completed.stdout.strip()


def http_transport(request: LLMRequest) -> str:
    payload: dict[str, object] = {
        "model": request.model,
        "messages": _messages(request.system, request.prompt),
    }
    if request.temperature is not None:
        payload["temperature"] = request.temperature
    if request.max_tokens is not None:
        payload["max_tokens"] = request.max_tokens

    headers = {"Content-Type": "application/json"}
    if request.api_key:
        headers["Authorization"] = f"Bearer {request.api_key}"
    http_request = Request(
        f"{request.base_url}/chat/completions",
        data=json.dumps(payload).encode("utf-8"),
        headers=headers,
        method="POST",
    )

    try:
        with urlopen(http_request, timeout=request.request_timeout or 120.0) as response:
            raw = response.read()
    except HTTPError as exc:  # pragma: no cover - depends on runtime
        detail = exc.read().decode("utf-8", errors="ignore").strip()
        raise GenerationError(f"LLM endpoint returned {exc.code}: {detail or exc.reason}") from exc
    except URLError as exc:  # pragma: no cover - depends on runtime
        raise GenerationError(f"LLM endpoint unreachable (network error): {exc.reason}") from exc

    try:
        body = json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError as exc:
        raise GenerationError("LLM endpoint returned invalid JSON") from exc
    content = _completion_text(body)
    if not content:
        raise GenerationError("LLM endpoint returned an empty completion")
    return content.strip()


def _messages(system: str | None, prompt: str) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    return messages


def _completion_text(body: object) -> str:
    if not isinstance(body, dict):
        return ""
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    first = choices[0]
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    text = first.get("text")
    return text if isinstance(text, str) else ""


def _first_env(keys: Sequence[str]) -> str | None:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def _local_url(url: str) -> str:
    normalized = url.rstrip("/")
    host = urlparse(normalized).hostname
    if host is None or _is_local_host(host):
        return normalized
    raise ConfigurationError(f"Remote LLM endpoint '{url}' is not permitted; use a local runtime.")


def _is_local_host(host: str) -> bool:
    lowered = host.lower()
    if lowered in _LOCAL_HOSTS or lowered.endswith((".local", ".localdomain")):
        return True
    try:
        return ipaddress.ip_address(lowered).is_loopback
    except ValueError:
        return False


__all__ = ["LLMRequest", "LLMRunner", "cli_transport", "http_transport"]
