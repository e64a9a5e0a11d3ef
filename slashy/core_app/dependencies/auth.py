from typing import Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from slashy.core_app.api_clients.auth_client import AuthClient
from slashy.core_app.config import Settings, get_settings
from slashy.core_app.errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_client(settings: Settings = Depends(get_settings)) -> AuthClient:
    return AuthClient(settings)


def get_optional_account(
        token: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        auth_client: AuthClient = Depends(get_auth_client),
        settings: Settings = Depends(get_settings),
) -> Optional[Dict]:
    """
    Account behind the bearer token, or None when no token was sent.
    A token that is sent but does not resolve is rejected.

    In trusted_owner mode tokens are ignored: browsers send the public
    anon key there, which never resolves to an account.
    """
    if token is None or settings.auth_mode != "bearer":
        return None

    user_data = auth_client.validate_token(token.credentials)
    if not user_data:
        raise Unauthorized("Unauthorized: Valid authentication required")
    return user_data
