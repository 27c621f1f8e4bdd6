"""tokenkv exceptions."""


class TokenKVError(Exception):
    """Base exception for tokenkv."""

    pass


class ConfigError(TokenKVError):
    """Configuration error."""

    pass


class UnauthorizedError(TokenKVError):
    """Token is missing, unknown or revoked.

    The message never says which, so callers cannot test which tokens exist.
    """

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFoundError(TokenKVError):
    """Key not found in the caller's namespace."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key not found: {key}")
        self.key = key


class InvalidArgumentError(TokenKVError):
    """Malformed request parameters (empty key, bad TTL)."""

    pass


class BackendUnavailableError(TokenKVError):
    """Backend unreachable or failed. Retryable by the caller."""

    pass


class InternalError(TokenKVError):
    """Encoding/decoding invariant violated. Indicates a bug."""

    pass
