"""LiteLLM client wrapper with retry and API key validation.

Every embedding, completion and rerank call goes through this module.
LiteLLM's built-in retry is used (num_retries=3, exponential backoff).
"""

from __future__ import annotations

import os

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
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def has_api_key(provider: str) -> bool:
    env_var = _PROVIDER_ENV.get(provider)
    return bool(env_var and os.getenv(env_var))


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed_texts(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Call litellm.embedding() for a batch; vectors come back in input order."""
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
    )
    items = sorted(response.data, key=lambda d: d.get("index", 0))
    return [item["embedding"] for item in items]


def rerank(model: str, query: str, documents: list[str], top_n: int) -> list[tuple[int, float]]:
    """Call litellm.rerank(); return ``(index, relevance_score)`` pairs, best first."""
    response = litellm.rerank(
        model=model,
        query=query,
        documents=documents,
        top_n=top_n,
    )
    pairs = [(int(r["index"]), float(r["relevance_score"])) for r in response.results]
    return sorted(pairs, key=lambda p: p[1], reverse=True)
