# backend/app/services/vector_store.py
"""
Vector index client - fetches precomputed ICP vectors from Pinecone

Namespace convention: team_{team_id}_icps, vector id = ICP id.
"""

from typing import Any, Dict, List, Optional, Protocol
import logging

import httpx

from app.config import settings
from app.exceptions import ProviderNotConfiguredError
from app.services.enrichment_providers import request_with_retry

logger = logging.getLogger(__name__)


def icp_namespace(team_id) -> str:
    return f"team_{team_id}_icps"


class VectorIndex(Protocol):
    async def fetch_vector(self, namespace: str, vector_id: str) -> Optional[Dict[str, Any]]:
        """Return {"id": ..., "values": [...]} or None."""


class PineconeVectorStore:
    """Thin REST client over the Pinecone data plane"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        index_host: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key if api_key is not None else settings.PINECONE_API_KEY
        self.index_host = (index_host or settings.PINECONE_INDEX_HOST or "").rstrip("/")
        self.client = client
        self.timeout = timeout

    async def fetch_vector(self, namespace: str, vector_id: str) -> Optional[Dict[str, Any]]:
        if not self.api_key or not self.index_host:
            raise ProviderNotConfiguredError("pinecone")

        kwargs = {
            "params": {"ids": str(vector_id), "namespace": namespace},
            "headers": {"Api-Key": self.api_key, "Accept": "application/json"},
        }

        if self.client is not None:
            response = await self._fetch(self.client, kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._fetch(client, kwargs)

        vectors = (response.json() or {}).get("vectors") or {}
        record = vectors.get(str(vector_id))
        if not record or not record.get("values"):
            logger.warning(f"Vector {vector_id} not found in namespace {namespace}")
            return None

        return {"id": record.get("id", str(vector_id)), "values": list(record["values"])}

    async def _fetch(self, client: httpx.AsyncClient, kwargs: Dict[str, Any]) -> httpx.Response:
        return await request_with_retry(
            client,
            "GET",
            f"{self.index_host}/vectors/fetch",
            provider="pinecone",
            timeout=self.timeout,
            **kwargs,
        )


def values_of(record: Optional[Dict[str, Any]]) -> Optional[List[float]]:
    if not record:
        return None
    return record.get("values") or None
