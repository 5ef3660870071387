"""LLM adapters for insight generation.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LLMResponse:
    """Raw text returned by the model plus the model identifier that produced it."""

    text: str
    model: str


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    model_name: str = "unknown"

    @property
    def has_credentials(self) -> bool:
        """Whether the adapter is configured with an API credential."""
        return True

    @abstractmethod
    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        response_schema: Dict[str, Any],
    ) -> LLMResponse:
        """Ask the model for structured JSON and return the raw response.

        Args:
            system_instruction: Fixed behavioural instruction for the model.
            prompt: The user prompt carrying the compact dataset.
            response_schema: JSON schema the output must conform to.

        Returns:
            LLMResponse with the raw text (expected to be JSON).
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Uses the async client and the JSON-schema response format so the
    service itself constrains output to the insights contract.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 800,
        temperature: float = 0.4,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            temperature: Sampling temperature.
            api_key: API key. When absent the adapter reports no credentials
                and the client is never created.
            base_url: Optional base URL for OpenAI-compatible endpoints.
        """
        self.model_name = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._api_key = (api_key or "").strip()
        self._base_url = base_url
        self._client: Any = None

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                from openai import AsyncOpenAI  # type: ignore[import-untyped]
            except ImportError as exc:
                raise ImportError(
                    "openai package is required for OpenAILLMAdapter. "
                    "Install it with: pip install openai"
                ) from exc

            client_kwargs: dict = {"api_key": self._api_key, "max_retries": 0}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        response_schema: Dict[str, Any],
    ) -> LLMResponse:
        """Call the chat completion API with a strict JSON schema.

        Args:
            system_instruction: Fixed behavioural instruction for the model.
            prompt: The user prompt carrying the compact dataset.
            response_schema: JSON schema the output must conform to.

        Returns:
            LLMResponse with the message content and the served model name.
        """
        response = await self._get_client().chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "insights",
                    "strict": True,
                    "schema": response_schema,
                },
            },
            stream=False,
        )
        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        return LLMResponse(text=text, model=response.model or self.model_name)


# ---------------------------------------------------------------------------
# Fixed mock response used for local testing.
# ---------------------------------------------------------------------------
_MOCK_RESPONSE = {
    "resumen": "Respuesta simulada para pruebas locales.",
    "hallazgos": ["Hallazgo de prueba identificado en los datos."],
    "riesgos": ["Sin riesgo real: respuesta de prueba."],
    "recomendaciones": ["Verificar la integración con el servicio de IA."],
    "anomalias": [],
    "preguntasSugeridas": ["¿Qué represa presenta mayor variación?"],
}

_MOCK_RESPONSE_JSON = json.dumps(_MOCK_RESPONSE, ensure_ascii=False)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that returns a fixed valid JSON response.

    Used for local testing and CI pipelines where no LLM API
    is available.
    """

    model_name = "mock-model"

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        response_schema: Dict[str, Any],
    ) -> LLMResponse:
        """Return a fixed JSON string regardless of input."""
        return LLMResponse(text=_MOCK_RESPONSE_JSON, model=self.model_name)


def build_adapter(settings: Any) -> BaseLLMAdapter:
    """Instantiate the adapter selected by ``settings.adapter``.

    adapter=mock   -> MockLLMAdapter  (testing, no API key required)
    adapter=openai -> OpenAILLMAdapter (default)
    """
    if settings.adapter == "mock":
        return MockLLMAdapter()
    return OpenAILLMAdapter(
        model=settings.model,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        api_key=settings.api_key,
        base_url=settings.base_url,
    )
