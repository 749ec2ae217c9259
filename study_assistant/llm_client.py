"""AI provider clients: text embedding and chat completion.

Two interchangeable providers implement the same capability:

- ``OllamaProvider`` talks to a local Ollama server
- ``OpenAICompatibleProvider`` talks to any OpenAI-style HTTP API
  (OpenAI embeddings, DeepSeek chat, ...)

The retrieval code only depends on ``AIProvider.embed`` and the answer
generation code on ``AIProvider.complete``; neither sees a provider's
request or response shape.
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

import httpx
import structlog

from study_assistant import config

logger = structlog.get_logger()


class ProviderError(RuntimeError):
    """Raised when a provider answers with an unusable payload."""


class AIProvider(ABC):
    """Capability interface shared by all AI providers."""

    name: str = "provider"

    def __init__(
        self,
        embedding_model: Optional[str] = None,
        chat_model: Optional[str] = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider.

        Args:
            embedding_model: Model used by ``embed``
            chat_model: Model used by ``complete``
            timeout: Request timeout in seconds (default from config)
            transport: Optional httpx transport (used to stub the network)
        """
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def _client(self, timeout: Optional[float] = None, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout, transport=self.transport, **kwargs
        )

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Convert text into a fixed-dimension vector."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's completion for a system + user prompt pair."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the provider answers at all."""


class OllamaProvider(AIProvider):
    """Async client for interacting with the Ollama API."""

    name = "ollama"

    def __init__(self, base_url: str = None, **kwargs):
        """Initialize Ollama provider.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
        """
        kwargs.setdefault("embedding_model", config.EMBEDDING_MODEL)
        kwargs.setdefault("chat_model", config.CHAT_MODEL)
        super().__init__(**kwargs)
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to the provider's chat model)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If Ollama service is unavailable
        """
        model = model or self.chat_model

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {"num_predict": config.COMPLETION_MAX_TOKENS},
        }

        if temperature is not None:
            payload["options"]["temperature"] = temperature

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.info(
                    "ollama_chat_response",
                    model=model,
                    response_length=len(data.get("message", {}).get("content", "")),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a text.

        Raises:
            httpx.HTTPError: On API errors
            ProviderError: If Ollama returns no vector
        """
        payload = {"model": self.embedding_model, "prompt": text}

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=self.embedding_model,
                    prompt_length=len(text),
                )

                response = await client.post(f"{self.base_url}/api/embeddings", json=payload)
                response.raise_for_status()
                embedding = response.json().get("embedding", [])

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

        if not embedding:
            raise ProviderError("Empty embedding returned from Ollama")

        logger.debug(
            "ollama_embedding_response",
            model=self.embedding_model,
            dimension=len(embedding),
        )
        return embedding

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        data = await self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=config.COMPLETION_TEMPERATURE,
        )
        return data.get("message", {}).get("content", "")

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise

    async def health_check(self) -> bool:
        try:
            await self.list_models()
            return True
        except httpx.HTTPError:
            return False


class OpenAICompatibleProvider(AIProvider):
    """Async client for OpenAI-style ``/embeddings`` and ``/chat/completions``."""

    name = "openai"

    def __init__(self, base_url: str = None, api_key: str = None, **kwargs):
        """Initialize the provider.

        Args:
            base_url: API base URL (defaults to config.OPENAI_BASE_URL)
            api_key: Bearer token (defaults to config.OPENAI_API_KEY)
        """
        kwargs.setdefault("embedding_model", config.OPENAI_EMBEDDING_MODEL)
        kwargs.setdefault("chat_model", config.OPENAI_CHAT_MODEL)
        super().__init__(**kwargs)
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a text.

        Raises:
            httpx.HTTPError: On API errors
            ProviderError: If the response holds no vector
        """
        payload = {"model": self.embedding_model, "input": text}

        try:
            async with self._client(headers=self._headers()) as client:
                response = await client.post(f"{self.base_url}/embeddings", json=payload)
                response.raise_for_status()
                data = response.json().get("data") or []

        except httpx.HTTPError as e:
            logger.error("openai_embedding_error", error=str(e), base_url=self.base_url)
            raise

        embedding = data[0].get("embedding") if data else None
        if not embedding:
            raise ProviderError("Empty embedding returned from provider")

        logger.debug(
            "openai_embedding_response",
            model=self.embedding_model,
            dimension=len(embedding),
        )
        return embedding

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Run a chat completion and return the first choice's text.

        Raises:
            httpx.HTTPError: On API errors
            ProviderError: If the response has no choices
        """
        payload = {
            "model": self.chat_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": config.COMPLETION_TEMPERATURE,
            "max_tokens": config.COMPLETION_MAX_TOKENS,
        }

        try:
            async with self._client(headers=self._headers()) as client:
                logger.info("openai_chat_request", model=self.chat_model, base_url=self.base_url)
                response = await client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPError as e:
            logger.error(
                "openai_chat_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("Completion response contained no choices")

        content = (choices[0].get("message") or {}).get("content") or ""
        logger.info("openai_chat_response", model=self.chat_model, response_length=len(content))
        return content

    async def health_check(self) -> bool:
        try:
            async with self._client(timeout=5.0, headers=self._headers()) as client:
                response = await client.get(f"{self.base_url}/models")
                return response.status_code < 500
        except httpx.HTTPError:
            return False


def create_embedding_provider(provider: str = None) -> AIProvider:
    """Build the provider used for embeddings (default from config)."""
    provider = provider or config.EMBEDDING_PROVIDER
    if provider == "ollama":
        return OllamaProvider()
    if provider == "openai":
        return OpenAICompatibleProvider()
    raise ValueError(f"Unknown embedding provider: {provider}")


def create_chat_provider(provider: str = None) -> AIProvider:
    """Build the provider used for completions (default from config)."""
    provider = provider or config.CHAT_PROVIDER
    if provider == "ollama":
        return OllamaProvider()
    if provider == "openai":
        return OpenAICompatibleProvider(
            base_url=config.CHAT_API_BASE_URL, api_key=config.CHAT_API_KEY
        )
    raise ValueError(f"Unknown chat provider: {provider}")


# Global provider instances (lazy)
_embedding_provider: Optional[AIProvider] = None
_chat_provider: Optional[AIProvider] = None


def get_embedding_provider() -> AIProvider:
    """Get or create the shared embedding provider."""
    global _embedding_provider
    if _embedding_provider is None:
        _embedding_provider = create_embedding_provider()
    return _embedding_provider


def get_chat_provider() -> AIProvider:
    """Get or create the shared chat provider."""
    global _chat_provider
    if _chat_provider is None:
        _chat_provider = create_chat_provider()
    return _chat_provider
