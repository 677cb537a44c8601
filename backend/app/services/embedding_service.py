# backend/app/services/embedding_service.py
"""
Embedding Service - OpenAI embeddings for prospect text

Single and batch variants; batch output preserves input order.
Results are cached in-process by sha256(model:text).
"""

from typing import Dict, List, Optional, Protocol
import hashlib
import logging

from openai import AsyncOpenAI, OpenAIError

from app.config import settings
from app.exceptions import ProviderFailureError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    async def generate_embedding(self, text: str) -> List[float]:
        ...

    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        ...


class EmbeddingService:
    """OpenAI-backed EmbeddingClient"""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
    ):
        self._client = client
        self.model = model or settings.EMBEDDING_MODEL
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self._cache: Dict[str, List[float]] = {}

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise ProviderNotConfiguredError("openai")
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    def _cache_key(self, text: str) -> str:
        return hashlib.sha256(f"{self.model}:{text}".encode()).hexdigest()

    async def generate_embedding(self, text: str) -> List[float]:
        cache_key = self._cache_key(text)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        logger.debug(f"Generating embedding ({len(text)} chars) with {self.model}")
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                encoding_format="float",
            )
        except OpenAIError as e:
            raise ProviderFailureError("openai", str(e)) from e

        embedding = list(response.data[0].embedding)
        self._cache[cache_key] = embedding
        return embedding

    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts with as few API calls as batch_size allows."""
        results: List[Optional[List[float]]] = [self._cache.get(self._cache_key(t)) for t in texts]
        missing = [i for i, vector in enumerate(results) if vector is None]

        logger.info(
            f"🔄 Generating batch embeddings: {len(missing)} new, "
            f"{len(texts) - len(missing)} cached"
        )

        for start in range(0, len(missing), self.batch_size):
            chunk = missing[start:start + self.batch_size]
            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=[texts[i] for i in chunk],
                    encoding_format="float",
                )
            except OpenAIError as e:
                raise ProviderFailureError("openai", str(e)) from e

            # API returns items tagged with their input index
            for item in sorted(response.data, key=lambda d: d.index):
                text_index = chunk[item.index]
                embedding = list(item.embedding)
                results[text_index] = embedding
                self._cache[self._cache_key(texts[text_index])] = embedding

        if any(vector is None for vector in results):
            raise ProviderFailureError("openai", "batch embedding response was incomplete")

        return results


_default_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Process-wide instance so the cache is shared."""
    global _default_service
    if _default_service is None:
        _default_service = EmbeddingService()
    return _default_service
