from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from streampost.connectors.api.types import ApiAuth
from streampost.core.exceptions import AuthError
from streampost.core.logger import get_logger

log = get_logger(__name__)


def bearer_headers(token: str) -> Dict[str, str]:
    if not token:
        raise ValueError("bearer auth requires a token")
    return {"Authorization": f"Bearer {token}"}


class OAuth2ClientCredentials:
    """Client-credentials grant against `<oauth_url>/<oauth_token_path>`.

    Sends key and secret as form fields, the way most OAuth2 servers (and the
    upstream token service) expect them, and returns the `access_token` string.
    """

    def __init__(self, auth: ApiAuth, *, client: Optional[httpx.Client] = None):
        if not auth.oauth_url or not auth.client_id or not auth.client_secret:
            raise ValueError("oauth2 auth requires oauth_url, client_id and client_secret")
        self.auth = auth
        self._client = client or httpx.Client()

    @property
    def token_url(self) -> str:
        base = self.auth.oauth_url.rstrip("/") + "/"
        return base + self.auth.oauth_token_path.lstrip("/")

    def fetch_token(self) -> str:
        form: Dict[str, str] = {
            "grant_type": "client_credentials",
            "client_id": self.auth.client_id,
            "client_secret": self.auth.client_secret,
        }
        try:
            resp = self._client.post(self.token_url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise AuthError(f"Token request to {self.token_url} failed: {e}") from e

        if not resp.is_success:
            raise AuthError(f"Token request to {self.token_url} was rejected", status_code=resp.status_code)

        try:
            body: Any = resp.json()
        except ValueError as e:
            preview = resp.text[:200]
            raise AuthError(
                f"Token response is not JSON. Response preview: {preview}",
                status_code=resp.status_code,
            ) from e

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token or not isinstance(token, str):
            raise AuthError("Token response has no access_token", status_code=resp.status_code)
        return token

    def close(self) -> None:
        self._client.close()
