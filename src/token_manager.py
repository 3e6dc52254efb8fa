import logging
import threading
from typing import Optional

import requests

from errors import AuthError
from logging_config import mask


logger = logging.getLogger(__name__)

PRODUCTION_TOKEN_HOST = "https://api.freeagent.com"
SANDBOX_TOKEN_HOST = "https://api.sandbox.freeagent.com"


def token_host_for(base_url: str) -> str:
    """The token endpoint lives on the sandbox host when the API base does"""
    return SANDBOX_TOKEN_HOST if "sandbox" in (base_url or "") else PRODUCTION_TOKEN_HOST


class FreeAgentTokenManager:
    """Holds the FreeAgent access/refresh token pair for the life of the process.

    One instance is shared by every request; refresh() is single-flight so two
    requests that hit a 401 together only exchange the refresh token once.
    """

    def __init__(self, client_id: str, client_secret: str, refresh_token: str,
                 access_token: str = "", base_url: str = "",
                 session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.access_token = access_token
        self.token_url = f"{token_host_for(base_url)}/v2/token_endpoint"
        self.session = session or requests.Session()
        self.timeout = timeout
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "FreeAgentTokenManager":
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            refresh_token=settings.refresh_token,
            access_token=settings.access_token,
            base_url=settings.base_url,
            session=session,
            timeout=settings.timeout_s,
        )

    def get_access_token(self) -> str:
        return self.access_token

    def refresh(self, stale_token: Optional[str] = None) -> str:
        """Exchange the refresh token for a new access token.

        stale_token is the token the caller just saw rejected. If another
        thread has already replaced it, that newer token is returned as is.
        """
        with self._lock:
            if stale_token is not None and self.access_token and self.access_token != stale_token:
                logger.info("🔄 Token already refreshed by another request, reusing it")
                return self.access_token
            return self._refresh_locked()

    def _refresh_locked(self) -> str:
        data = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        }
        logger.info("🔄 Refreshing FreeAgent access token...")
        logger.debug("  - Client ID: %s", mask(self.client_id))
        logger.debug("  - Refresh Token: %s", mask(self.refresh_token))

        try:
            response = self.session.post(self.token_url, data=data, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error("❌ Token refresh request failed: %s", e)
            raise AuthError("Failed to refresh FreeAgent token", details=str(e)) from e

        body = response.text or ""
        if not 200 <= response.status_code < 300:
            logger.error("❌ Token refresh failed: %s %s", response.status_code, body[:200])
            if response.status_code in (400, 401):
                logger.warning("⚠️  The refresh token may be expired or revoked, or the client credentials are wrong")
            raise AuthError(
                f"Failed to refresh FreeAgent token: {response.status_code}",
                details=body,
                status=response.status_code,
            )

        try:
            token_data = response.json()
        except ValueError:
            token_data = {}
        access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        if not access_token:
            raise AuthError(
                "Token endpoint returned no access_token",
                details=body,
                status=response.status_code,
            )

        self.access_token = access_token
        new_refresh = token_data.get("refresh_token")
        if new_refresh:
            self.refresh_token = new_refresh
        logger.info("✅ Obtained a new access token")
        return access_token
