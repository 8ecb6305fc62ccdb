"""Bearer credential providers for Vertex AI calls.

Token caching is left to google-auth: ``Credentials.valid`` stays true
until shortly before expiry, so refresh only happens when needed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

import google.auth.transport.requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from app.services.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class CredentialProvider(Protocol):
    async def get_token(self) -> str:
        """Return a short-lived bearer token."""


class StaticTokenProvider:
    """Fixed token, e.g. from ``gcloud auth print-access-token``."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ConfigurationError("Access token is empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token


class ServiceAccountCredentialProvider:
    """Service-account credentials refreshed through google-auth."""

    def __init__(self, credentials: service_account.Credentials) -> None:
        self._credentials = credentials
        self._lock = asyncio.Lock()

    @classmethod
    def from_key(cls, key: str | dict) -> "ServiceAccountCredentialProvider":
        """Build from the service account JSON (string or parsed dict)."""
        try:
            info = json.loads(key) if isinstance(key, str) else key
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=[CLOUD_PLATFORM_SCOPE],
            )
        except (ValueError, TypeError, KeyError) as e:
            raise ConfigurationError(f"Invalid GOOGLE_SERVICE_ACCOUNT_KEY: {e}") from e
        logger.info("Service account credentials loaded for %s", credentials.service_account_email)
        return cls(credentials)

    async def get_token(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                request = google.auth.transport.requests.Request()
                try:
                    await asyncio.to_thread(self._credentials.refresh, request)
                except GoogleAuthError as e:
                    raise ProviderError(f"Failed to get access token: {e}", "auth_error") from e
            token = self._credentials.token
        if not token:
            raise ProviderError("Failed to get access token", "auth_error")
        return token


def credentials_from_settings(settings) -> CredentialProvider | None:
    """Service account key first, then a static token; None when neither is set.

    An unparseable key is logged and treated as missing, so polls report
    the service as not configured instead of failing at startup.
    """
    if settings.GOOGLE_SERVICE_ACCOUNT_KEY:
        try:
            return ServiceAccountCredentialProvider.from_key(settings.GOOGLE_SERVICE_ACCOUNT_KEY)
        except ConfigurationError as e:
            logger.error("%s", e)
            return None
    if settings.GOOGLE_ACCESS_TOKEN:
        return StaticTokenProvider(settings.GOOGLE_ACCESS_TOKEN)
    return None
