"""
Generation providers (chat completion) for answers and summaries

Every backend is an OpenAI-compatible endpoint driven through the ``openai``
SDK: Groq, Google Gemini (OpenAI compatibility layer) and NVIDIA NIM.
Provider selection prefers Groq, then Gemini, then NVIDIA, unless a
provider is named explicitly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import GenerationError, NoProviderConfiguredError

logger = logging.getLogger(__name__)


PROVIDER_PREFERENCE = ("groq", "gemini", "nvidia")

PROVIDER_DEFAULTS = {
    "groq": {
        "base_url": "https://api.groq.com/openai/v1",
        "model": "llama-3.3-70b-versatile",
        "env_var": "GROQ_API_KEY",
    },
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "model": "gemini-1.5-flash",
        "env_var": "GOOGLE_GEMINI_API_KEY",
    },
    "nvidia": {
        "base_url": "https://integrate.api.nvidia.com/v1",
        "model": "meta/llama-3.3-70b-instruct",
        "env_var": "NVIDIA_API_KEY",
    },
}


@dataclass
class ChatMessage:
    role: str  # "system", "user" or "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    content: str
    tokens_used: int
    provider: str
    model: str


class OpenAICompatibleProvider:
    """
    Chat completion against one OpenAI-compatible endpoint.

    The client is created lazily and cached, like the rest of the services.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 120.0,
    ):
        defaults = PROVIDER_DEFAULTS.get(name, {})
        self.name = name
        self.model = model or defaults.get("model")
        self._api_key = api_key
        self._base_url = base_url or defaults.get("base_url")
        self._timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self._base_url,
                api_key=self._api_key,
                timeout=self._timeout,
            )
        return self._client

    def chat(
        self,
        messages: list[ChatMessage],
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: Optional[float] = None,
    ) -> ChatResponse:
        """
        Run one chat completion.

        Raises:
            GenerationError: On timeout (``timed_out=True``) or any API failure
        """
        from openai import APIError, APITimeoutError

        client = self._get_client()
        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[m.to_dict() for m in messages],
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except APITimeoutError as e:
            logger.error(f"{self.name} generation timed out ({self.model})")
            raise GenerationError(
                f"{self.name} generation timed out", provider=self.name, timed_out=True
            ) from e
        except APIError as e:
            logger.error(f"{self.name} generation failed: {type(e).__name__}: {e}")
            raise GenerationError(f"{self.name} generation failed: {e}", provider=self.name) from e

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens_used = (usage.total_tokens or 0) if usage else 0

        return ChatResponse(
            content=content,
            tokens_used=tokens_used,
            provider=self.name,
            model=self.model,
        )


def select_provider(
    api_keys: dict[str, str],
    preferred: Optional[str] = None,
    timeout: float = 120.0,
    models: Optional[dict[str, str]] = None,
) -> OpenAICompatibleProvider:
    """
    Pick the generation backend.

    Args:
        api_keys: Provider name -> API key, for the providers that have one
        preferred: Provider to use when it has a key (else preference order)
        timeout: Default client timeout in seconds
        models: Optional per-provider model overrides

    Raises:
        NoProviderConfiguredError: No provider has credentials
    """
    models = models or {}
    order = list(PROVIDER_PREFERENCE)
    if preferred:
        preferred = preferred.strip().lower()
        if preferred in order:
            order.remove(preferred)
        order.insert(0, preferred)

    for name in order:
        key = api_keys.get(name)
        if key and name in PROVIDER_DEFAULTS:
            logger.info(f"Using generation provider: {name}")
            return OpenAICompatibleProvider(name, key, model=models.get(name), timeout=timeout)

    raise NoProviderConfiguredError(
        "No LLM provider configured. Set GROQ_API_KEY, GOOGLE_GEMINI_API_KEY or NVIDIA_API_KEY"
    )


class LazyProvider:
    """
    Defers provider selection to the first ``chat`` call so a deployment
    without LLM credentials can still start, list documents and serve
    zero-result queries.
    """

    def __init__(self, api_keys: dict[str, str], preferred: Optional[str] = None, timeout: float = 120.0):
        self._api_keys = api_keys
        self._preferred = preferred
        self._timeout = timeout
        self._provider = None

    @property
    def configured(self) -> bool:
        return any(self._api_keys.get(name) for name in PROVIDER_DEFAULTS)

    def chat(
        self,
        messages: list[ChatMessage],
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: Optional[float] = None,
    ) -> ChatResponse:
        if self._provider is None:
            self._provider = select_provider(self._api_keys, self._preferred, self._timeout)
        return self._provider.chat(messages, max_tokens=max_tokens, temperature=temperature, timeout=timeout)
