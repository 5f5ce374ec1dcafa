from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class ApiAuth:
    """OAuth2 client-credentials settings for the token endpoint."""

    oauth_url: str
    client_id: str
    client_secret: str
    oauth_token_path: str = "oauth/token"

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return f"ApiAuth(oauth_url={self.oauth_url!r}, client_id={self.client_id!r})"


@dataclass(frozen=True)
class ApiConnection:
    url: str
    timeout_seconds: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict)
