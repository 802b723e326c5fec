"""Embedding generation, cosine similarity and text chunking."""

import asyncio
import hashlib
import logging
import math
import re
from typing import Any

import httpx

from .config import EmbeddingSettings
from .exceptions import DimensionMismatch, InvalidConfiguration, ProviderError, UnsupportedProvider

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
HUGGINGFACE_BASE_URL = "https://api-inference.huggingface.co/pipeline/feature-extraction"

SUPPORTED_PROVIDERS = frozenset({"openai", "huggingface", "hash"})

MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}
DEFAULT_DIMENSIONS = 768

_TOKEN = re.compile(r"\w+")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude."""
    if len(a) != len(b):
        raise DimensionMismatch(f"Embeddings must have the same dimensions ({len(a)} != {len(b)})")

    dot = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(y * y for y in b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def hash_embedding(text: str, dimensions: int) -> list[float]:
    """Deterministic bag-of-words embedding built from token hashes."""
    vector = [0.0] * dimensions
    for token in _TOKEN.findall(text.lower()):
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % dimensions
        vector[index] += 1.0 if digest[4] % 2 == 0 else -1.0

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


class EmbeddingService:
    """Turns text into vectors through a configured provider.

    Providers:
    - openai: ``POST {base_url}/embeddings``
    - huggingface: inference API feature extraction
    - hash: offline token-hash embedder, no network
    """

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, embedding_settings: EmbeddingSettings, transport: httpx.AsyncBaseTransport | None = None) -> "EmbeddingService":
        return cls(
            provider=embedding_settings.provider,
            model=embedding_settings.model_name,
            api_key=embedding_settings.get_api_key_for_provider(),
            base_url=embedding_settings.base_url,
            timeout=embedding_settings.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate_embedding(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            UnsupportedProvider: If the provider is unknown or lacks its API key.
            ProviderError: If the upstream provider call fails.
        """
        match self.provider:
            case "openai":
                return await self._generate_openai(text)
            case "huggingface":
                return await self._generate_huggingface(text)
            case "hash":
                return hash_embedding(text, self.get_dimensions())
            case _:
                raise UnsupportedProvider(f"Unsupported embedding provider: {self.provider}")

    async def generate_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Embed texts concurrently; any single failure fails the whole batch."""
        return list(await asyncio.gather(*(self.generate_embedding(text) for text in texts)))

    async def _post(self, url: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(url, json=payload, headers={"Authorization": f"Bearer {self.api_key}"})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"{self.provider} API error {e.response.status_code}: {e.response.text[:200]}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Failed to generate embedding: {e}") from e

    async def _generate_openai(self, text: str) -> list[float]:
        if not self.api_key:
            raise UnsupportedProvider("OpenAI embeddings require an API key (OPENAI_API_KEY or RESEARCH_EMBEDDING_API_KEY)")

        data = await self._post(f"{self.base_url or OPENAI_BASE_URL}/embeddings", {"model": self.model, "input": text})
        try:
            return [float(v) for v in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError("No embedding data received from OpenAI") from e

    async def _generate_huggingface(self, text: str) -> list[float]:
        if not self.api_key:
            raise UnsupportedProvider("HuggingFace embeddings require an API key (HF_TOKEN or RESEARCH_EMBEDDING_API_KEY)")

        data = await self._post(f"{self.base_url or HUGGINGFACE_BASE_URL}/{self.model}", {"inputs": text})
        # Feature extraction returns either a flat vector or one row per input
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        if not isinstance(data, list) or not all(isinstance(v, (int, float)) for v in data):
            raise ProviderError("Unexpected response format from HuggingFace")
        return [float(v) for v in data]

    def calculate_similarity(self, a: list[float], b: list[float]) -> float:
        return cosine_similarity(a, b)

    def find_most_similar(self, query: list[float], candidates: list[list[float]]) -> tuple[int, float]:
        """Index and similarity of the best candidate, ``(-1, -1.0)`` when there are none.

        Ties keep the earliest index.
        """
        best_index, best_similarity = -1, -1.0
        for i, candidate in enumerate(candidates):
            similarity = cosine_similarity(query, candidate)
            if similarity > best_similarity:
                best_index, best_similarity = i, similarity
        return best_index, best_similarity

    @staticmethod
    def chunk_text(text: str, max_size: int = 500, overlap: int = 50) -> list[str]:
        """Split text into overlapping windows of ``max_size`` words.

        Raises:
            InvalidConfiguration: If the window would not advance.
        """
        if max_size <= 0 or overlap < 0 or overlap >= max_size:
            raise InvalidConfiguration(f"Invalid chunking parameters: max_size={max_size}, overlap={overlap}")

        words = text.split()
        stride = max_size - overlap
        chunks = []
        for start in range(0, len(words), stride):
            chunks.append(" ".join(words[start : start + max_size]))
            if start + max_size >= len(words):
                break
        return [chunk for chunk in chunks if chunk.strip()]

    @staticmethod
    def preprocess_text(text: str) -> str:
        return " ".join(text.split())

    @staticmethod
    def validate_embedding(embedding: Any) -> bool:
        if not isinstance(embedding, list) or not embedding:
            return False
        return all(isinstance(v, (int, float)) and not math.isnan(v) for v in embedding)

    def get_dimensions(self) -> int:
        return MODEL_DIMENSIONS.get(self.model, DEFAULT_DIMENSIONS)
