"""LiteLLM client wrapper: completion, embeddings, and API key validation.

Every text-generation and embedding call in groundwork routes through this
module. Calls carry an explicit timeout and default to zero retries; callers
decide how to degrade when a call fails.
"""

from __future__ import annotations

import os
from typing import Protocol

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def has_api_key(model: str) -> bool:
    """Return True when validate_api_key(*model*) would succeed."""
    try:
        validate_api_key(model)
    except EnvironmentError:
        return False
    return True


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.0,
    timeout: float = 30.0,
    num_retries: int = 0,
) -> str:
    """Call litellm.completion() and return the content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature (0 = deterministic).
        timeout: Request timeout in seconds.
        num_retries: Number of retries on transient errors.

    Returns:
        The text content of the first choice.

    Raises:
        litellm.exceptions.APIError: On API failure.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed(
    model: str,
    texts: list[str],
    timeout: float = 20.0,
    num_retries: int = 0,
) -> list[list[float]]:
    """Call litellm.embedding() for a batch of texts. Returns one vector per text.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        texts: Texts to embed, in order.
        timeout: Request timeout in seconds.
        num_retries: Number of retries on transient errors.

    Raises:
        ValueError: If the provider returns a different number of vectors.
    """
    response = litellm.embedding(
        model=model,
        input=texts,
        timeout=timeout,
        num_retries=num_retries,
    )
    vectors = [item["embedding"] for item in response.data]
    if len(vectors) != len(texts):
        raise ValueError(
            f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
        )
    return vectors


# ------------------------------------------------------------------
# Text generation seam
# ------------------------------------------------------------------


class TextGenerator(Protocol):
    """Anything that turns a prompt into text. Failures raise."""

    def generate(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> str: ...


class LiteLLMGenerator:
    """TextGenerator backed by litellm.completion()."""

    def __init__(self, timeout_s: float = 30.0, num_retries: int = 0) -> None:
        self.timeout_s = timeout_s
        self.num_retries = num_retries

    def generate(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> str:
        return complete(
            model,
            [{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=self.timeout_s,
            num_retries=self.num_retries,
        )
