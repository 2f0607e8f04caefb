"""
LLM Service Module

Provides an abstraction layer for Large Language Model providers:
- Cloud: OpenAI (gpt-4o-mini default) - Requires API key
- Local: Ollama (Llama 3, Mistral, etc.) - Free, runs locally
- Cloud: Google Gemini - Requires API key
- Cloud: Mistral AI - Requires API key

Every call takes explicit SamplingParams and an optional prior conversation,
which is sent as chat messages ahead of the rendered prompt. Provider clients
are created lazily, once per provider instance, with a request timeout.

Usage:
    llm = LLMService()
    response = llm.complete(
        prompt="Context: ...\\nQuestion: What is RAG?",
        history=[{"role": "user", "content": "Hi"}, ...],
        params=SamplingParams(temperature=0.7),
        model="gpt-4o-mini",
    )
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Dict

from docbot.config.settings import get_settings, LLMConfig
from docbot.errors import ProviderError

# Configure logging
logger = logging.getLogger(__name__)

# Chat models offered for chatbots; others are accepted but logged
AVAILABLE_MODELS = ["gpt-4o-mini", "gpt-3.5-turbo", "gpt-4o", "gpt-4"]
DEFAULT_MODEL = "gpt-4o-mini"


@dataclass
class SamplingParams:
    """
    Sampling settings for one completion.

    Attributes:
        temperature: Creativity (0-2, lower = more deterministic)
        presence_penalty: Penalize tokens already present
        frequency_penalty: Penalize frequent tokens
        max_tokens: Maximum tokens in response (None = provider default)
    """
    temperature: float = 0.7
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    max_tokens: Optional[int] = None


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


def build_messages(prompt: str, history: Optional[List[Dict[str, str]]] = None) -> List[Dict[str, str]]:
    """Prior turns followed by the rendered prompt as the final user message."""
    messages = [{"role": m["role"], "content": m["content"]} for m in (history or [])]
    messages.append({"role": "user", "content": prompt})
    return messages


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement:
    - complete: Generate text from a prompt plus prior messages
    - model_name: Default model of the provider
    """

    @abstractmethod
    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a response from the LLM.

        Args:
            prompt: Fully rendered prompt
            history: Prior messages [{"role": ..., "content": ...}]
            params: Sampling settings
            model: Model override (None = provider default)

        Returns:
            LLMResponse object
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name."""
        pass


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for GPT models.

    Models:
    - gpt-4o-mini: Fast, cost-effective (default)
    - gpt-3.5-turbo: Legacy, cheap
    - gpt-4o / gpt-4: Most capable
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        client=None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model name
            api_key: API key (or from environment)
            timeout: Per-request timeout in seconds
            max_retries: Client-level retries on transient errors
            client: Pre-built OpenAI client (for pooling or tests)
        """
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = client

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            from openai import OpenAI

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
                )

            self._client = OpenAI(
                api_key=api_key,
                timeout=self._timeout,
                max_retries=self._max_retries,
            )
            logger.info("OpenAI client initialized")
        return self._client

    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using OpenAI."""
        client = self._get_client()
        params = params or SamplingParams()

        kwargs = {
            "model": model or self._model,
            "messages": build_messages(prompt, history),
            "temperature": params.temperature,
            "presence_penalty": params.presence_penalty,
            "frequency_penalty": params.frequency_penalty,
        }
        if params.max_tokens:
            kwargs["max_tokens"] = params.max_tokens

        try:
            response = client.chat.completions.create(**kwargs)

            choice = response.choices[0]
            return LLMResponse(
                content=choice.message.content or "",
                model=response.model,
                usage={
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                } if response.usage else None,
                finish_reason=choice.finish_reason,
            )
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

    @property
    def model_name(self) -> str:
        return self._model


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull llama3
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
    ):
        """
        Initialize Ollama provider.

        Args:
            model: Ollama model name
            base_url: Ollama server URL
            timeout: Per-request timeout in seconds
        """
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = None

        logger.info(f"Initializing OllamaProvider: model={model}, url={base_url}")

    def _get_client(self):
        """Get or create Ollama client."""
        if self._client is None:
            try:
                import ollama
            except ImportError:
                raise ImportError(
                    "ollama package required. Install with: pip install 'docbot[ollama]'"
                )
            self._client = ollama.Client(host=self._base_url, timeout=self._timeout)
            logger.info("Ollama client initialized")
        return self._client

    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using Ollama."""
        client = self._get_client()
        params = params or SamplingParams()
        model = model or self._model

        options = {
            "temperature": params.temperature,
            "presence_penalty": params.presence_penalty,
            "frequency_penalty": params.frequency_penalty,
        }
        if params.max_tokens:
            options["num_predict"] = params.max_tokens

        try:
            response = client.chat(
                model=model,
                messages=build_messages(prompt, history),
                options=options,
            )

            return LLMResponse(
                content=response["message"]["content"],
                model=model,
                usage={
                    "prompt_tokens": response.get("prompt_eval_count", 0),
                    "completion_tokens": response.get("eval_count", 0),
                },
                finish_reason="stop",
            )
        except Exception as e:
            logger.error(f"Ollama generation error: {e}")
            raise

    @property
    def model_name(self) -> str:
        return self._model


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider using the google-genai package.

    Models:
    - gemini-2.0-flash: Latest, fastest, recommended
    - gemini-1.5-pro: More capable, longer context
    """

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize Gemini provider.

        Args:
            model: Gemini model name
            api_key: API key (or from environment)
            timeout: Per-request timeout in seconds
        """
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._client = None

        logger.info(f"Initializing GeminiProvider: model={model}")

    def _get_client(self):
        """Get or create Gemini client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types
            except ImportError:
                raise ImportError(
                    "google-genai package required. "
                    "Install with: pip install 'docbot[gemini]'"
                )

            api_key = self._api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ValueError(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )

            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(self._timeout * 1000)),
            )
            logger.info(f"Gemini client initialized with model: {self._model}")
        return self._client

    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using Gemini."""
        from google.genai import types

        client = self._get_client()
        params = params or SamplingParams()
        model = model or self._model

        # Gemini names the assistant role "model"
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in build_messages(prompt, history)
        ]

        # Penalties are not enabled on every Gemini model
        config = types.GenerateContentConfig(temperature=params.temperature)
        if params.max_tokens:
            config.max_output_tokens = params.max_tokens

        try:
            response = client.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )

            return LLMResponse(
                content=response.text or "",
                model=model,
                finish_reason="stop",
            )
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise

    @property
    def model_name(self) -> str:
        return self._model


class MistralProvider(BaseLLMProvider):
    """
    Mistral AI cloud provider.

    Models:
    - mistral-small-latest: Fast, efficient (recommended for FAQ)
    - mistral-large-latest: Most capable
    """

    def __init__(
        self,
        model: str = "mistral-small-latest",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize Mistral provider.

        Args:
            model: Mistral model name
            api_key: API key (or from environment)
            timeout: Per-request timeout in seconds
        """
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._client = None

        logger.info(f"Initializing MistralProvider: model={model}")

    def _get_client(self):
        """Get or create Mistral client."""
        if self._client is None:
            try:
                from mistralai import Mistral
            except ImportError:
                raise ImportError(
                    "mistralai package required. "
                    "Install with: pip install 'docbot[mistral]'"
                )

            api_key = self._api_key or os.getenv("MISTRAL_API_KEY")
            if not api_key:
                raise ValueError(
                    "Mistral API key not found. Set MISTRAL_API_KEY environment variable."
                )

            self._client = Mistral(api_key=api_key, timeout_ms=int(self._timeout * 1000))
            logger.info(f"Mistral client initialized with model: {self._model}")
        return self._client

    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using Mistral."""
        client = self._get_client()
        params = params or SamplingParams()
        model = model or self._model

        try:
            response = client.chat.complete(
                model=model,
                messages=build_messages(prompt, history),
                temperature=params.temperature,
                presence_penalty=params.presence_penalty,
                frequency_penalty=params.frequency_penalty,
                max_tokens=params.max_tokens,
            )

            choice = response.choices[0]
            return LLMResponse(
                content=choice.message.content or "",
                model=model,
                usage={
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                } if response.usage else None,
                finish_reason=choice.finish_reason,
            )
        except Exception as e:
            logger.error(f"Mistral generation error: {e}")
            raise

    @property
    def model_name(self) -> str:
        return self._model


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration and turns provider
    failures into ProviderError("llm").

    Example:
        llm = LLMService()
        response = llm.complete("What is AI?", params=llm.default_params())

        # Specify provider
        llm = LLMService(provider="mistral")
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        provider_instance: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            provider: "openai", "ollama", "gemini", or "mistral" (default from config)
            config: Optional LLMConfig instance
            provider_instance: Ready-made provider, bypasses selection
        """
        settings = get_settings()
        self.config = config or settings.llm

        provider = provider or self.config.provider

        if provider_instance is not None:
            self._provider = provider_instance
        elif provider == "openai":
            self._provider = OpenAIProvider(
                model=self.config.openai_model,
                api_key=self.config.openai_api_key,
                timeout=self.config.request_timeout,
                max_retries=self.config.max_retries,
            )
        elif provider == "ollama":
            self._provider = OllamaProvider(
                model=self.config.ollama_model,
                base_url=self.config.ollama_base_url,
                timeout=self.config.request_timeout,
            )
        elif provider == "gemini":
            self._provider = GeminiProvider(
                model=self.config.gemini_model,
                api_key=self.config.gemini_api_key,
                timeout=self.config.request_timeout,
            )
        elif provider == "mistral":
            self._provider = MistralProvider(
                model=self.config.mistral_model,
                api_key=self.config.mistral_api_key,
                timeout=self.config.request_timeout,
            )
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")

        self._provider_name = provider
        logger.info(f"LLMService initialized with {provider} provider")

    def default_params(self) -> SamplingParams:
        """Sampling settings from configuration."""
        return SamplingParams(
            temperature=self.config.temperature,
            presence_penalty=self.config.presence_penalty,
            frequency_penalty=self.config.frequency_penalty,
        )

    def complete(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        params: Optional[SamplingParams] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Chatbot model names are OpenAI model names; other providers ignore
        the override and use their configured model.

        Args:
            prompt: Fully rendered prompt
            history: Prior messages sent before the prompt
            params: Sampling settings (default from config)
            model: Model override

        Returns:
            LLMResponse object

        Raises:
            ProviderError: If the provider call fails
        """
        params = params or self.default_params()

        if model and self._provider_name != "openai":
            logger.debug(f"Ignoring model {model} for {self._provider_name} provider")
            model = None
        elif model and model not in AVAILABLE_MODELS:
            logger.warning(f"Model {model} is not in the supported list {AVAILABLE_MODELS}")

        try:
            return self._provider.complete(
                prompt=prompt,
                history=history,
                params=params,
                model=model,
            )
        except Exception as e:
            raise ProviderError("llm", str(e)) from e

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return self._provider_name
