"""Token validation against the backend's token set."""

from tokenkv.caching import TTLCache
from tokenkv.config import DEFAULT_TOKENS_SET, AuthConfig
from tokenkv.observability import get_logger, mask_token
from tokenkv.protocols import Backend

logger = get_logger(__name__)


class TokenAuthority:
    """Checks presented tokens for membership in the backend token set.

    Tokens are provisioned by operators (``SADD tokens <token>``); this class
    only reads. With ``cache_ttl_seconds`` > 0, positive answers are cached
    for that long, which is then the upper bound on revocation latency.
    Negative answers are never cached, so new tokens work immediately.
    """

    def __init__(
        self,
        backend: Backend,
        tokens_set: str = DEFAULT_TOKENS_SET,
        cache_ttl_seconds: int = 0,
        cache_max_size: int = 10000,
    ) -> None:
        """Initialize token authority.

        Args:
            backend: Backend holding the token set
            tokens_set: Name of the set holding valid tokens
            cache_ttl_seconds: Positive-result cache TTL (0 disables caching)
            cache_max_size: Maximum cached tokens
        """
        self.backend = backend
        self.tokens_set = tokens_set
        self._set_key = tokens_set.encode("utf-8")
        self._cache: TTLCache[bool] | None = None
        if cache_ttl_seconds > 0:
            self._cache = TTLCache(ttl_seconds=cache_ttl_seconds, max_size=cache_max_size)

    @classmethod
    def from_config(cls, backend: Backend, config: AuthConfig) -> "TokenAuthority":
        """Create from an AuthConfig."""
        return cls(
            backend,
            tokens_set=config.tokens_set,
            cache_ttl_seconds=config.cache_ttl_seconds,
            cache_max_size=config.cache_max_size,
        )

    @property
    def revocation_latency(self) -> float:
        """Seconds a revoked token may still be accepted."""
        return self._cache.ttl_seconds if self._cache else 0.0

    async def validate(self, token: str | None) -> bool:
        """Return True if token is in the token set.

        Empty or missing tokens are rejected without touching the backend.
        Backend faults propagate as BackendUnavailableError.
        """
        if not token:
            return False

        if self._cache is not None and await self._cache.get(token):
            return True

        try:
            member = token.encode("utf-8")
        except UnicodeEncodeError:
            logger.debug("Token rejected: not encodable")
            return False

        valid = await self.backend.is_member(self._set_key, member)
        if valid:
            if self._cache is not None:
                await self._cache.set(token, True)
        else:
            logger.debug("Token rejected", context={"token_hint": mask_token(token)})
        return valid

    async def invalidate(self, token: str) -> None:
        """Forget a cached positive result."""
        if self._cache is not None:
            await self._cache.delete(token)
