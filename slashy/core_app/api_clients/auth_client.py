# slashy/core_app/api_clients/auth_client.py
from typing import Dict, Optional

import requests

from slashy.core_app.config import Settings
from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())


class AuthClient:
    """Resolves bearer tokens to accounts through the auth service."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = (settings.auth_service_url or "").rstrip("/")
        self.api_key = settings.auth_service_key
        self.timeout = settings.http_timeout
        self.session = session or requests.Session()

    def validate_token(self, token: str) -> Optional[Dict]:
        """
        Returns the account behind the token, or None when the token is not valid.
        Raises UpstreamProviderError when the auth service cannot be reached.
        """
        if not token:
            return None
        if not self.base_url:
            logger.error("AUTH_SERVICE_URL is not configured")
            raise UpstreamProviderError("Authentication service not configured", status_code=500)

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            response = self.session.get(f"{self.base_url}/auth/v1/user", headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Auth service request failed: {str(e)}")
            raise UpstreamProviderError("Authentication service unavailable", status_code=503)

        if response.status_code != 200:
            logger.warning(f"Token validation failed: {response.status_code}")
            return None

        try:
            user_details = response.json()
        except ValueError:
            logger.error("Auth service returned a non-JSON body")
            return None

        if not user_details or not user_details.get("id"):
            logger.warning("Token is invalid")
            return None

        return {
            "id": str(user_details["id"]),
            "email": user_details.get("email"),
            "role": user_details.get("role", "authenticated"),
        }
