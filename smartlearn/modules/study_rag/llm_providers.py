"""
LLM Providers Module
====================
Abstraction layer for swappable LLM backends.
Supports Ollama (local) and Groq Cloud (OpenAI-compatible).

Every provider exposes one blocking operation, ``generate``, which returns
the full reply text or raises ``GenerationFailed``.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_ollama import ChatOllama

from smartlearn.core.constants import MessageRole
from smartlearn.core.exceptions import DeadlineExceeded, GenerationFailed, GenerationTimeout
from smartlearn.utils.helpers import call_with_deadline
from .config import rag_config
from .models import ChatTurn

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    OLLAMA = "ollama"
    GROQ = "groq"


def build_messages(prompt: str, history: Optional[Sequence[ChatTurn]] = None) -> List[BaseMessage]:
    """Turn prior chat turns plus the new prompt into LangChain messages."""
    messages: List[BaseMessage] = []
    for turn in history or []:
        if turn.role == MessageRole.USER:
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    messages.append(HumanMessage(content=prompt))
    return messages


class BaseLLM(ABC):
    """
    Abstract base class for LLM providers.
    Provides a unified interface for different LLM backends.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.3,
        timeout: Optional[float] = None,
        **kwargs
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = rag_config.GENERATION_TIMEOUT if timeout is None else timeout
        self._llm: Optional[BaseChatModel] = None
        self._llm_json: Optional[BaseChatModel] = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name"""

    @abstractmethod
    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        """Create and return the underlying LangChain chat model"""

    def get_llm(self, json_mode: bool = False) -> BaseChatModel:
        """
        Get LLM instance with optional JSON mode (lazy initialization).

        Args:
            json_mode: If True, configure LLM to output JSON

        Returns:
            LangChain chat model instance
        """
        if json_mode:
            if self._llm_json is None:
                self._llm_json = self._create_llm(json_mode=True)
            return self._llm_json
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    def _invoke(self, messages: List[BaseMessage], json_mode: bool) -> str:
        response = self.get_llm(json_mode=json_mode).invoke(messages)
        return response.content if hasattr(response, 'content') else str(response)

    def generate(
        self,
        prompt: str,
        history: Optional[Sequence[ChatTurn]] = None,
        json_mode: bool = False
    ) -> str:
        """
        Send a prompt (plus optional conversation history) and wait for the reply.

        Args:
            prompt: The new user prompt
            history: Prior chat turns, oldest first
            json_mode: Ask the provider for JSON output

        Returns:
            Full reply text

        Raises:
            GenerationTimeout: If the model does not answer within the deadline
            GenerationFailed: On any provider error or an empty reply
        """
        messages = build_messages(prompt, history)

        try:
            text = call_with_deadline(
                self._invoke, messages, json_mode,
                timeout=self.timeout, service=self.provider_name
            )
        except DeadlineExceeded as e:
            raise GenerationTimeout(f"{self.provider_name} timed out after {e.timeout:g}s") from e
        except GenerationFailed:
            raise
        except Exception as e:
            logger.error(f"{self.provider_name} generation error: {e}")
            raise GenerationFailed(f"{self.provider_name} error: {e}") from e

        if not isinstance(text, str) or not text.strip():
            raise GenerationFailed(f"{self.provider_name} returned an empty reply")
        return text

    def check_connection(self) -> Dict[str, Any]:
        """
        Check if the LLM provider is accessible.

        Returns:
            Dictionary with connection status
        """
        info = self.get_info()
        try:
            self.generate("Say 'OK' if you can read this.")
            info.update(connected=True, message=f"{self.provider_name} connection successful")
        except GenerationFailed as e:
            logger.error(f"{self.provider_name} connection check failed: {e}")
            info.update(connected=False, error=str(e), message=f"Cannot connect to {self.provider_name}")
        return info

    def get_info(self) -> Dict[str, Any]:
        """Get provider information"""
        return {
            "provider": self.provider_name,
            "model": self.model,
            "temperature": self.temperature
        }


class OllamaLLM(BaseLLM):
    """
    Ollama LLM provider for local inference.
    """

    def __init__(
        self,
        model: str = "llama3.1:latest",
        temperature: float = 0.3,
        base_url: str = "http://localhost:11434",
        num_ctx: int = 8192,
        **kwargs
    ):
        super().__init__(model=model, temperature=temperature, **kwargs)
        self.base_url = base_url
        self.num_ctx = num_ctx
        logger.info(f"OllamaLLM initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.OLLAMA.value

    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        """Create ChatOllama instance"""
        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "base_url": self.base_url,
            "num_ctx": self.num_ctx,
        }

        if json_mode:
            kwargs["format"] = "json"

        return ChatOllama(**kwargs)

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info["base_url"] = self.base_url
        return info


class GroqLLM(BaseLLM):
    """
    Groq Cloud LLM provider using OpenAI-compatible API.
    """

    def __init__(
        self,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.3,
        api_key: Optional[str] = None,
        base_url: str = "https://api.groq.com/openai/v1",
        max_tokens: int = 4096,
        fallback_to_ollama: bool = True,
        ollama_config: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(model=model, temperature=temperature, **kwargs)

        if not api_key:
            raise ValueError("GROQ_API_KEY is required for Groq provider")

        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.fallback_to_ollama = fallback_to_ollama
        self.ollama_config = ollama_config or {}
        self._fallback: Optional[OllamaLLM] = None

        logger.info(f"GroqLLM initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.GROQ.value

    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        """Create ChatOpenAI instance configured for Groq"""
        from langchain_openai import ChatOpenAI

        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "api_key": self.api_key,
            "base_url": self.base_url,
            "max_tokens": self.max_tokens,
        }

        if json_mode:
            # Groq supports JSON mode via response_format
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

        return ChatOpenAI(**kwargs)

    def _invoke(self, messages: List[BaseMessage], json_mode: bool) -> str:
        """
        Invoke Groq with automatic fallback to Ollama on errors.

        Handles:
        - 401: Invalid API key
        - 429: Rate limit exceeded
        - Other connection errors
        """
        try:
            return super()._invoke(messages, json_mode)
        except Exception as e:
            error_str = str(e).lower()

            if "401" in error_str or "unauthorized" in error_str or "invalid api key" in error_str:
                logger.error(f"Groq authentication error: {e}")
                error_msg = "Groq API key is invalid or expired"
            elif "429" in error_str or "rate limit" in error_str or "too many requests" in error_str:
                logger.warning(f"Groq rate limit exceeded: {e}")
                error_msg = "Groq rate limit exceeded"
            else:
                logger.error(f"Groq API error: {e}")
                error_msg = f"Groq API error: {e}"

            # Try fallback to Ollama if enabled
            if self.fallback_to_ollama and self.ollama_config:
                logger.info("Attempting fallback to Ollama...")
                if self._fallback is None:
                    self._fallback = OllamaLLM(**self.ollama_config)
                try:
                    return self._fallback._invoke(messages, json_mode)
                except Exception as fallback_error:
                    logger.error(f"Ollama fallback also failed: {fallback_error}")
                    raise GenerationFailed(
                        f"{error_msg}. Ollama fallback also failed: {fallback_error}"
                    ) from fallback_error

            raise GenerationFailed(error_msg) from e

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update(base_url=self.base_url, fallback_available=self.fallback_to_ollama)
        return info


class LLMFactory:
    """
    Factory class for creating LLM instances.
    Supports runtime switching between providers.
    """

    # Class-level current provider (for runtime switching)
    _current_provider: Optional[str] = None
    _current_model: Optional[str] = None

    @classmethod
    def create(
        cls,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        **kwargs
    ) -> BaseLLM:
        """
        Create an LLM instance based on provider.

        Args:
            provider: Provider name ("ollama" or "groq").
                     If None, uses the runtime selection or LLM_PROVIDER
            model: Model name. If None, uses provider-specific default
            **kwargs: Additional provider-specific arguments

        Returns:
            BaseLLM instance
        """
        if provider is None:
            provider = cls._current_provider or rag_config.LLM_PROVIDER

        provider = provider.lower()

        if model is None:
            model = cls._current_model

        logger.info(f"Creating LLM: provider={provider}, model={model}")

        if provider == LLMProvider.OLLAMA.value:
            return cls._create_ollama(model=model, **kwargs)
        elif provider == LLMProvider.GROQ.value:
            return cls._create_groq(model=model, **kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {provider}. Supported: ollama, groq")

    @classmethod
    def _ollama_config(cls, model: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        return {
            "model": model or rag_config.OLLAMA_MODEL,
            "temperature": kwargs.get("temperature", rag_config.OLLAMA_TEMPERATURE),
            "base_url": kwargs.get("base_url", rag_config.OLLAMA_BASE_URL),
            "num_ctx": kwargs.get("num_ctx", rag_config.OLLAMA_NUM_CTX),
            "timeout": kwargs.get("timeout", rag_config.GENERATION_TIMEOUT),
        }

    @classmethod
    def _create_ollama(cls, model: Optional[str] = None, **kwargs) -> OllamaLLM:
        """Create Ollama LLM instance"""
        return OllamaLLM(**cls._ollama_config(model, **kwargs))

    @classmethod
    def _create_groq(cls, model: Optional[str] = None, **kwargs) -> GroqLLM:
        """Create Groq LLM instance"""
        if not rag_config.GROQ_API_KEY:
            raise ValueError(
                "GROQ_API_KEY environment variable is required for Groq provider. "
                "Set it in your .env file."
            )

        return GroqLLM(
            model=model or rag_config.GROQ_MODEL,
            temperature=kwargs.get("temperature", rag_config.OLLAMA_TEMPERATURE),
            api_key=rag_config.GROQ_API_KEY,
            base_url=kwargs.get("base_url", rag_config.GROQ_BASE_URL),
            max_tokens=kwargs.get("max_tokens", 4096),
            timeout=kwargs.get("timeout", rag_config.GENERATION_TIMEOUT),
            fallback_to_ollama=rag_config.GROQ_FALLBACK_TO_OLLAMA,
            ollama_config=cls._ollama_config(),
        )

    @classmethod
    def set_provider(cls, provider: str, model: Optional[str] = None) -> Dict[str, Any]:
        """
        Set the current LLM provider at runtime.

        Args:
            provider: Provider name ("ollama" or "groq")
            model: Optional model override

        Returns:
            Dictionary with status and provider info
        """
        provider = provider.lower()

        if provider not in [p.value for p in LLMProvider]:
            return {
                "success": False,
                "error": f"Unknown provider: {provider}. Supported: ollama, groq"
            }

        if provider == LLMProvider.GROQ.value and not rag_config.GROQ_API_KEY:
            return {
                "success": False,
                "error": "GROQ_API_KEY is not configured"
            }

        cls._current_provider = provider
        cls._current_model = model

        logger.info(f"LLM provider switched to: {provider}, model: {model}")

        return {
            "success": True,
            "provider": provider,
            "model": model,
            "message": f"Successfully switched to {provider}"
        }

    @classmethod
    def get_current_provider(cls) -> Dict[str, Any]:
        """Get current provider configuration"""
        provider = cls._current_provider or rag_config.LLM_PROVIDER

        if provider == LLMProvider.GROQ.value:
            model = cls._current_model or rag_config.GROQ_MODEL
        else:
            model = cls._current_model or rag_config.OLLAMA_MODEL

        return {
            "provider": provider,
            "model": model,
            "available_providers": [p.value for p in LLMProvider]
        }

    @classmethod
    def reset(cls):
        """Reset to default provider from config"""
        cls._current_provider = None
        cls._current_model = None
        logger.info("LLM provider reset to default from config")
