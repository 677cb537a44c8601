"""
Domain exceptions for the prospecting pipeline.

Services raise these; app.main maps them to HTTP responses via status_code.
"""
from datetime import date
from typing import Optional


class ProspectingError(Exception):
    """Base exception for prospecting services"""
    status_code = 500

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


# ============================================================================
# NOT FOUND / ACCESS
# ============================================================================

class NotFoundError(ProspectingError):
    """Resource not found"""
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"{resource} not found"
            if resource_id:
                message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ProspectNotFoundError(NotFoundError):
    def __init__(self, prospect_id: Optional[str] = None):
        super().__init__("Prospect", prospect_id)


class CampaignNotFoundError(NotFoundError):
    def __init__(self, campaign_id: Optional[str] = None):
        super().__init__("Campaign", campaign_id)


class ICPNotDefinedError(NotFoundError):
    def __init__(self, campaign_id: Optional[str] = None):
        super().__init__(message=f"Campaign {campaign_id} has no ICP defined")


class ICPVectorNotFoundError(NotFoundError):
    def __init__(self, icp_id: str, namespace: str):
        super().__init__(
            message=f"ICP vector '{icp_id}' not found in namespace '{namespace}'"
        )


class NotFoundOrAccessDeniedError(NotFoundError):
    def __init__(self, resource: str = "Prospect"):
        super().__init__(message=f"{resource} not found or access denied")


# ============================================================================
# BUSINESS RULES
# ============================================================================

class ConflictError(ProspectingError):
    status_code = 409


class BadRequestError(ProspectingError):
    status_code = 400


class ProviderNotConfiguredError(BadRequestError):
    def __init__(self, provider: str):
        super().__init__(f"{provider.capitalize()} API key not configured")


class DomainUnresolvedError(BadRequestError):
    def __init__(self, prospect_id: Optional[str] = None):
        super().__init__(f"Cannot determine domain for Hunter search (prospect {prospect_id})")


class QuotaExceededError(ProspectingError):
    status_code = 429

    def __init__(self, provider: str, usage: int, limit: int, reset_date: date):
        self.provider = provider
        self.usage = usage
        self.limit = limit
        self.reset_date = reset_date
        super().__init__(
            f"{provider.capitalize()} quota exceeded ({usage}/{limit}). "
            f"Resets on {reset_date.strftime('%B %d, %Y')}"
        )


# ============================================================================
# PROVIDERS
# ============================================================================

class ProviderFailureError(ProspectingError):
    """Network / 5xx / 429 after the retry budget, or a non-retryable 4xx"""
    status_code = 502

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(f"{provider} call failed: {message}")


class AllProvidersFailedError(ProspectingError):
    status_code = 502

    def __init__(self, errors: dict):
        self.errors = errors
        details = "; ".join(f"{name}: {err}" for name, err in errors.items())
        super().__init__(f"Failed to enrich prospect with any provider ({details})")
