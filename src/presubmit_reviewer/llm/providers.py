"""
LLM Providers

Provider interface, an OpenAI-compatible chat completions provider and the
registry used to resolve a configured provider/model pair.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type, Union

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from ..config import LLMConfig


logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """LLM provider call failed"""


class LLMResponseError(LLMProviderError):
    """LLM returned a response that is not a JSON object"""


class UnknownModelError(LLMProviderError):
    """Configured provider or model is not registered"""


class LLMProvider:
    """Structured-output inference: prompt in, JSON object out."""

    def run_prompt(
        self,
        prompt: str,
        system_prompt: Optional[str],
        schema: Type[BaseModel],
    ) -> Dict:
        raise NotImplementedError



def _parse_json_object(text: Optional[str]) -> Dict:
    try:
        data = json.loads(text or "")
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Model output is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise LLMResponseError("Model output is not a JSON object")
    return data


class OpenAICompatibleProvider(LLMProvider):
    """
    Chat completions through the ``openai`` SDK with a JSON schema response
    format. Works against OpenAI and any gateway speaking the same API.
    """

    # Self-hosted gateways accept any key but the SDK requires one
    PLACEHOLDER_API_KEY = "not-needed"

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout_seconds: int = 300,
        max_retries: int = 3,
    ):
        """
        Initialize provider.

        Args:
            model: Model identifier sent to the endpoint
            api_key: API key (optional for self-hosted endpoints)
            base_url: API base URL (default: OpenAI)
            temperature: Sampling temperature, omitted when None
            timeout_seconds: Request timeout
            max_retries: SDK retries on connection errors, 429 and 5xx
        """
        self.model = model
        self.temperature = temperature
        self.client = OpenAI(
            api_key=api_key or self.PLACEHOLDER_API_KEY,
            base_url=base_url or None,
            timeout=timeout_seconds,
            max_retries=max_retries,
        )

    @property
    def base_url(self) -> str:
        return str(self.client.base_url).rstrip('/')

    def run_prompt(
        self,
        prompt: str,
        system_prompt: Optional[str],
        schema: Type[BaseModel],
    ) -> Dict:
        messages = []
        if system_prompt:
            messages.append({'role': 'system', 'content': system_prompt})
        messages.append({'role': 'user', 'content': prompt})

        options = {}
        if self.temperature is not None:
            options['temperature'] = self.temperature

        logger.debug(f"Running inference with {self.model} ({len(prompt)} prompt chars)")

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={
                    'type': 'json_schema',
                    'json_schema': {
                        'name': schema.__name__,
                        'schema': schema.model_json_schema(),
                    },
                },
                **options,
            )
        except OpenAIError as e:
            raise LLMProviderError(f"Inference request failed: {e}")

        if not completion.choices:
            raise LLMResponseError("Inference response has no choices")
        return _parse_json_object(completion.choices[0].message.content)



ProviderFactory = Callable[[LLMConfig, "ModelSpec"], LLMProvider]
ModelMatcher = Union[List[str], Callable[[str], bool]]


@dataclass
class ModelSpec:
    """Resolved model entry."""
    name: str
    temperature: Optional[float] = None


@dataclass
class _ProviderEntry:
    factory: ProviderFactory
    models: Dict[str, ModelSpec] = field(default_factory=dict)
    fallbacks: List[ModelMatcher] = field(default_factory=list)
    accepts_any_model: bool = False


class ProviderRegistry:
    """
    Registry of providers and their known models.

    Built once and handed to the orchestrator so tests can substitute
    their own providers.
    """

    def __init__(self):
        self._providers: Dict[str, _ProviderEntry] = {}

    def register(self, name: str, factory: ProviderFactory, accepts_any_model: bool = False) -> None:
        self._providers[name] = _ProviderEntry(factory=factory, accepts_any_model=accepts_any_model)

    def register_model(self, provider: str, name: str, temperature: Optional[float] = None) -> None:
        self._entry(provider).models[name] = ModelSpec(name=name, temperature=temperature)

    def register_fallback(self, provider: str, matcher: ModelMatcher) -> None:
        """Accept unknown model names matching a prefix list or predicate."""
        self._entry(provider).fallbacks.append(matcher)

    @property
    def provider_names(self) -> List[str]:
        return list(self._providers)

    def models_for(self, provider: str) -> List[str]:
        return list(self._entry(provider).models)

    def resolve(self, provider: str, model: str) -> ModelSpec:
        entry = self._entry(provider)

        if model in entry.models:
            return entry.models[model]

        for matcher in entry.fallbacks:
            if callable(matcher):
                matches = matcher(model)
            else:
                matches = any(
                    model == p or model.startswith(p + "-") or model.startswith(p + ".")
                    for p in matcher
                )
            if matches:
                return ModelSpec(name=model)

        if entry.accepts_any_model:
            return ModelSpec(name=model)

        raise UnknownModelError(
            f"Unknown LLM model: {model}. For provider {provider}, supported models are: "
            f"{', '.join(entry.models)}"
        )

    def create(self, config: LLMConfig) -> LLMProvider:
        """Build the provider for the configured provider/model."""
        if not config.model:
            raise UnknownModelError("LLM model is not configured")
        spec = self.resolve(config.provider, config.model)
        logger.info(f"Using LLM provider '{config.provider}' with model '{spec.name}'")
        return self._entry(config.provider).factory(config, spec)

    def _entry(self, provider: str) -> _ProviderEntry:
        if provider not in self._providers:
            raise UnknownModelError(
                f"Unknown LLM provider: {provider}. Valid providers are: {', '.join(self._providers)}"
            )
        return self._providers[provider]


def _openai_compatible(config: LLMConfig, spec: ModelSpec) -> LLMProvider:
    return OpenAICompatibleProvider(
        model=spec.name,
        api_key=config.api_key,
        base_url=config.base_url,
        temperature=spec.temperature,
        timeout_seconds=config.timeout_seconds,
    )


# Reasoning models only accept the default temperature
OPENAI_MODELS = {
    "gpt-5": 1.0,
    "gpt-5-mini": 1.0,
    "gpt-5-nano": 1.0,
    "gpt-4.1": None,
    "gpt-4.1-mini": None,
    "gpt-4o": None,
    "gpt-4o-mini": None,
    "o1": None,
    "o3-mini": 1.0,
    "o4-mini": 1.0,
}


def default_registry() -> ProviderRegistry:
    """Registry with the built-in providers."""
    registry = ProviderRegistry()

    registry.register("openai-compatible", _openai_compatible)
    for name, temperature in OPENAI_MODELS.items():
        registry.register_model("openai-compatible", name, temperature)
    registry.register_fallback(
        "openai-compatible",
        lambda name: name.startswith("gpt-") or re.match(r'^o\d+(-|\.|$)', name) is not None,
    )

    # Self-hosted gateways (vLLM, Ollama, OpenRouter) serve arbitrary model ids
    registry.register("self-hosted", _openai_compatible, accepts_any_model=True)

    return registry
