# backend/app/services/enrichment_providers.py
"""
Enrichment Providers - Apollo.io (people search) + Hunter.io (email finder)

Both adapters normalize to EnrichmentResult. "No match" is a successful
zero-confidence result, not an error.

Retry policy (per provider call):
- max 3 attempts, 10s timeout each
- 4xx (except 429) -> fail immediately
- 429 / 5xx / network errors -> backoff 1s, 2s, 4s
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse
import asyncio
import logging

import httpx

from app.config import settings
from app.exceptions import (
    DomainUnresolvedError,
    ProviderFailureError,
    ProviderNotConfiguredError,
)
from app.models import Prospect
from app.schemas.prospecting import CompanyInfo, EnrichmentResult

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429


def extract_domain(url: Optional[str]) -> Optional[str]:
    """
    Resolve a bare domain from a company/profile URL.

    "https://www.Example.com/about" -> "example.com"
    "www.Example.com"               -> "example.com"
    """
    if not url or not url.strip():
        return None

    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"

    try:
        host = urlparse(url).hostname
    except ValueError:
        return None

    if not host:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(confidence, 1.0))


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    provider: str,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """
    HTTP request with exponential backoff.

    Raises:
        ProviderFailureError: non-retryable 4xx, or retries exhausted
    """
    last_error: Optional[Exception] = None
    last_status: Optional[int] = None

    for attempt in range(1, max_attempts + 1):
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            last_error = e
            last_status = e.response.status_code

            # Don't retry on client errors (except rate limit)
            if 400 <= last_status < 500 and last_status != RATE_LIMIT_STATUS:
                raise ProviderFailureError(provider, f"HTTP {last_status}", status=last_status) from e

        except httpx.TransportError as e:
            # Timeouts, connection resets, DNS failures
            last_error = e
            last_status = None

        if attempt < max_attempts:
            delay = backoff_base * (2 ** (attempt - 1))
            reason = "Rate limited" if last_status == RATE_LIMIT_STATUS else "Request failed"
            logger.warning(
                f"{reason} by {provider}, retrying in {delay:.0f}s "
                f"(attempt {attempt}/{max_attempts})"
            )
            await sleep(delay)

    detail = f"HTTP {last_status}" if last_status else (str(last_error) or type(last_error).__name__)
    raise ProviderFailureError(
        provider,
        f"{detail} after {max_attempts} attempts",
        status=last_status,
    ) from last_error


class EnrichmentProvider(ABC):
    """
    Base class for enrichment provider adapters.

    Subclasses build a provider-specific request and parse the provider's
    payload into an EnrichmentResult.
    """
    name: str = ""
    endpoint: str = ""
    method: str = "GET"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.client = client
        self.timeout = timeout if timeout is not None else settings.ENRICHMENT_TIMEOUT_SECONDS
        self.max_attempts = max_attempts or settings.ENRICHMENT_MAX_ATTEMPTS
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.ENRICHMENT_BACKOFF_BASE_SECONDS
        )
        self.sleep = sleep

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    def build_request(self, prospect: Prospect) -> Dict[str, Any]:
        """Request params/body, without credentials."""

    @abstractmethod
    def parse_response(self, prospect: Prospect, request_data: Dict, payload: Dict) -> EnrichmentResult:
        ...

    def request_kwargs(self, request_data: Dict[str, Any]) -> Dict[str, Any]:
        if self.method == "GET":
            return {"params": request_data}
        return {"json": request_data}

    def request_summary(self, prospect: Prospect) -> Dict[str, Any]:
        """Audit-safe description of what would be sent."""
        return {
            "prospect_id": str(prospect.id),
            "endpoint": self.endpoint,
            "name": prospect.name,
            "company": prospect.company_name,
        }

    async def enrich(self, prospect: Prospect) -> EnrichmentResult:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name)

        request_data = self.build_request(prospect)
        logger.info(f"🔍 Enriching prospect {prospect.id} with {self.name.capitalize()}")

        response = await self._send(request_data)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderFailureError(self.name, "invalid JSON response") from e

        result = self.parse_response(prospect, request_data, payload or {})
        if not result.matched:
            logger.info(f"{self.name.capitalize()}: no match for prospect {prospect.id}")
        return result

    async def _send(self, request_data: Dict[str, Any]) -> httpx.Response:
        kwargs = self.request_kwargs(request_data)
        kwargs.update(self.auth_kwargs())

        if self.client is not None:
            return await self._retry(self.client, kwargs)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._retry(client, kwargs)

    async def _retry(self, client: httpx.AsyncClient, kwargs: Dict[str, Any]) -> httpx.Response:
        return await request_with_retry(
            client,
            self.method,
            self.url,
            provider=self.name,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            sleep=self.sleep,
            timeout=self.timeout,
            **kwargs,
        )

    def auth_kwargs(self) -> Dict[str, Any]:
        return {}


# ============================================================================
# APOLLO (high-fidelity, annual quota)
# ============================================================================

class ApolloProvider(EnrichmentProvider):
    """Apollo.io people search - matches by person + company name"""
    name = "apollo"
    endpoint = "/people/search"
    method = "POST"

    def auth_kwargs(self) -> Dict[str, Any]:
        return {
            "headers": {
                "Content-Type": "application/json",
                "Cache-Control": "no-cache",
                "X-Api-Key": self.api_key,
            }
        }

    def build_request(self, prospect: Prospect) -> Dict[str, Any]:
        return {
            "person_name": prospect.name,
            "organization_name": prospect.company_name,
            "page": 1,
            "per_page": 1,
        }

    def parse_response(self, prospect: Prospect, request_data: Dict, payload: Dict) -> EnrichmentResult:
        people = payload.get("people") or []
        if not people:
            return EnrichmentResult(provider="apollo", confidence=0.0, raw_data=payload)

        person = people[0]
        org = person.get("organization") or {}
        phones = person.get("phone_numbers") or []

        return EnrichmentResult(
            email=person.get("email"),
            email_verified=person.get("email_status") == "verified",
            phone=phones[0].get("sanitized_number") if phones else None,
            job_title=person.get("title"),
            company_info=CompanyInfo(
                name=org.get("name") or prospect.company_name or "",
                domain=org.get("website_url"),
                size=org.get("estimated_num_employees"),
                industry=org.get("industry"),
                location=org.get("city"),
            ),
            confidence=_clamp_confidence(person.get("email_confidence")),
            provider="apollo",
            raw_data=person,
        )


# ============================================================================
# HUNTER (budget, monthly quota)
# ============================================================================

class HunterProvider(EnrichmentProvider):
    """Hunter.io email finder - requires a resolvable company domain"""
    name = "hunter"
    endpoint = "/email-finder"
    method = "GET"

    def resolve_domain(self, prospect: Prospect) -> Optional[str]:
        return extract_domain(prospect.company_url or prospect.profile_url or "")

    def build_request(self, prospect: Prospect) -> Dict[str, Any]:
        domain = self.resolve_domain(prospect)
        if not domain:
            raise DomainUnresolvedError(str(prospect.id))

        params = {"domain": domain, "full_name": prospect.name}
        if prospect.company_name:
            params["company"] = prospect.company_name
        return params

    def request_kwargs(self, request_data: Dict[str, Any]) -> Dict[str, Any]:
        return {"params": {**request_data, "api_key": self.api_key}}

    def request_summary(self, prospect: Prospect) -> Dict[str, Any]:
        summary = super().request_summary(prospect)
        summary["domain"] = self.resolve_domain(prospect)
        return summary

    def parse_response(self, prospect: Prospect, request_data: Dict, payload: Dict) -> EnrichmentResult:
        data = payload.get("data") or {}
        if not data.get("email"):
            return EnrichmentResult(provider="hunter", confidence=0.0, raw_data=payload)

        company = data.get("company") or {}
        score = data.get("score") or 0

        return EnrichmentResult(
            email=data["email"],
            email_verified=data.get("status") == "valid",
            phone=data.get("phone_number"),
            job_title=data.get("position"),
            company_info=CompanyInfo(
                name=prospect.company_name or "",
                domain=request_data.get("domain"),
                size=company.get("size"),
                industry=company.get("industry"),
            ),
            # Hunter returns 0-100
            confidence=_clamp_confidence(score / 100),
            provider="hunter",
            raw_data=data,
        )


def create_enrichment_providers(
    client: Optional[httpx.AsyncClient] = None,
    **kwargs,
) -> Dict[str, EnrichmentProvider]:
    """Factory - providers keyed by name, configured from settings"""
    return {
        "apollo": ApolloProvider(
            api_key=settings.APOLLO_API_KEY,
            base_url=settings.APOLLO_API_URL,
            client=client,
            **kwargs,
        ),
        "hunter": HunterProvider(
            api_key=settings.HUNTER_API_KEY,
            base_url=settings.HUNTER_API_URL,
            client=client,
            **kwargs,
        ),
    }
