"""Embedding providers: OpenAI-compatible HTTP API and offline feature hashing."""

import hashlib
import logging
import re

import numpy as np
from openai import OpenAI, OpenAIError

from codecite.errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Embeddings from OpenAI or any OpenAI-compatible server (e.g. Ollama)."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        dimensions: int | None = None,
    ):
        """Initialize the client.

        Args:
            model: Embedding model name.
            api_key: API key; OpenAI-compatible local servers accept any value.
            base_url: Server URL, or None for api.openai.com.
            timeout: Per-request timeout in seconds.
            dimensions: Optional output size for models that support it.
        """
        self._client = OpenAI(
            api_key=api_key or "unused",
            base_url=base_url,
            timeout=timeout,
            max_retries=1,
        )
        self._model = model
        self._dimensions = dimensions

    @property
    def model_name(self) -> str:
        return self._model

    def embed_one(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        # The API rejects empty strings
        inputs = [text if text.strip() else " " for text in texts]
        kwargs = {"model": self._model, "input": inputs}
        if self._dimensions:
            kwargs["dimensions"] = self._dimensions
        try:
            response = self._client.embeddings.create(**kwargs)
        except OpenAIError as e:
            raise ProviderError(f"Embedding request failed ({self._model}): {e}") from e

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise ProviderError(
                f"Embedding provider returned {len(data)} vectors for {len(texts)} inputs"
            )
        return [list(item.embedding) for item in data]


TOKEN_PATTERN = re.compile(r"[A-Za-z][a-z0-9]*|[A-Z]+(?![a-z])|\d+")
WORD_PATTERN = re.compile(r"\w+")


class HashingEmbedder:
    """
    Deterministic offline embedder based on feature hashing.

    Words, identifier parts (camelCase and snake_case pieces) and word
    bigrams are hashed into a fixed number of signed buckets; the vector is
    L2-normalized so cosine similarity reduces to a dot product. No network
    access, no model download. Useful for local setups and tests.
    """

    def __init__(self, dimensions: int = 256):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions

    @property
    def model_name(self) -> str:
        return f"hashing-v1-{self.dimensions}"

    def embed_one(self, text: str) -> list[float]:
        vector = np.zeros(self.dimensions, dtype=np.float32)
        features = self._features(text)
        for feature in features:
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "little")
            index = value % self.dimensions
            sign = 1.0 if (value >> 63) & 1 else -1.0
            vector[index] += sign
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector.tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_one(text) for text in texts]

    def _features(self, text: str) -> list[str]:
        words = [w.lower() for w in WORD_PATTERN.findall(text)]
        features = list(words)
        for word in WORD_PATTERN.findall(text):
            parts = [p.lower() for p in TOKEN_PATTERN.findall(word)]
            if len(parts) > 1:
                features.extend(parts)
        features.extend(f"{a} {b}" for a, b in zip(words, words[1:]))
        return features
