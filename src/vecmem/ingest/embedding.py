"""Batched LiteLLM embedding client.

- Texts are truncated to ``max_chars`` before submission.
- Batches of ``batch_size`` are sent one after another, never concurrently.
- Any failed or timed-out batch aborts the whole call with EmbeddingError;
  retrying is left to the next scheduled run.
- Output order and length always match the input.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any, Protocol

import litellm

from vecmem.config import EmbeddingCfg

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)


_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
}


class Embedder(Protocol):
    """Anything that turns texts into vectors, order and count preserved."""

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class EmbeddingError(RuntimeError):
    """Raised when the embedding service fails, times out, or returns a short batch."""


def provider_env_var(model: str) -> str | None:
    """Return the API-key variable required by *model*'s provider, if any."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    return _PROVIDER_ENV.get(provider)


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    env_var = provider_env_var(model)
    if env_var is None:
        return
    if not os.getenv(env_var):
        provider = model.split("/")[0] if "/" in model else "openai"
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class EmbeddingClient:
    """Wraps ``litellm.embedding()`` with sequential batching and truncation.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        batch_size: Maximum texts per request.
        max_chars: Per-text truncation applied before submission.
        timeout: Per-batch timeout in seconds.
        num_retries: LiteLLM-level retries per batch (0 = fail fast).
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        batch_size: int = 100,
        max_chars: int = 8_000,
        timeout: float = 60.0,
        num_retries: int = 0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.batch_size = batch_size
        self.max_chars = max_chars
        self.timeout = timeout
        self.num_retries = num_retries

    @classmethod
    def from_config(cls, cfg: EmbeddingCfg) -> EmbeddingClient:
        return cls(
            model=cfg.model,
            batch_size=cfg.batch_size,
            max_chars=cfg.max_chars,
            timeout=cfg.timeout,
            num_retries=cfg.num_retries,
        )

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, preserving order and count.

        Raises:
            EnvironmentError: If the provider's API key is missing.
            EmbeddingError: If any batch fails.
        """
        if not texts:
            return []
        validate_api_key(self.model)

        total = (len(texts) + self.batch_size - 1) // self.batch_size
        vectors: list[list[float]] = []
        for n, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = [t[: self.max_chars] for t in texts[start : start + self.batch_size]]
            logger.debug("Embedding batch %d/%d (%d texts)", n, total, len(batch))
            vectors.extend(self._embed_batch(batch, n, total))
        return vectors

    def _embed_batch(self, batch: list[str], n: int, total: int) -> list[list[float]]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=batch,
                timeout=self.timeout,
                num_retries=self.num_retries,
            )
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding batch {n}/{total} failed ({self.model}): {exc}"
            ) from exc

        vectors = _extract_vectors(response.data)
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding batch {n}/{total} returned {len(vectors)} vectors "
                f"for {len(batch)} inputs"
            )
        return vectors


def _extract_vectors(data: list[Any]) -> list[list[float]]:
    """Pull embeddings out of a LiteLLM response, ordered by ``index`` when present."""
    items: list[tuple[int, list[float]]] = []
    for position, item in enumerate(data):
        if isinstance(item, dict):
            index = item.get("index", position)
            embedding = item["embedding"]
        else:
            index = getattr(item, "index", position)
            embedding = item.embedding
        items.append((index if index is not None else position, list(embedding)))
    items.sort(key=lambda pair: pair[0])
    return [vec for _, vec in items]
