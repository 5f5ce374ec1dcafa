from __future__ import annotations

from typing import Optional, Protocol

from streampost.core.cache import LockedValueCache, ValueCache
from streampost.core.exceptions import AuthError
from streampost.core.logger import get_logger

log = get_logger(__name__)


class TokenFetcher(Protocol):
    def fetch_token(self) -> str:
        ...


class CredentialCache:
    """Process-wide bearer token, fetched lazily and dropped on demand.

    There is no expiry timer; the token is replaced only after `invalidate()`,
    which the orchestrator calls when the delivery endpoint answers 401.
    """

    def __init__(self, fetcher: TokenFetcher, *, cache: Optional[ValueCache[str]] = None):
        self._fetcher = fetcher
        self._cache: ValueCache[str] = cache or LockedValueCache()

    def get_token(self) -> str:
        fetched = False

        def _load() -> str:
            nonlocal fetched
            fetched = True
            log.info("Requesting new token...")
            try:
                token = self._fetcher.fetch_token()
            except AuthError:
                log.error("Not authenticated", exc_info=True)
                raise
            log.info("Successfully authenticated")
            return token

        token = self._cache.get_or_load(_load)
        if not fetched:
            log.info("Already authenticated")
        return token

    def invalidate(self) -> None:
        self._cache.invalidate()
        log.info("Cleared cached access token")

    @property
    def has_token(self) -> bool:
        return self._cache.get() is not None

    def close(self) -> None:
        close = getattr(self._fetcher, "close", None)
        if close is not None:
            close()
