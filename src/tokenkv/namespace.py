"""Mapping between (token, logical key) pairs and backend keys.

Backend keys are laid out as::

    <decimal byte length of token> ":" <token> ":" <logical key>

The length prefix pins the token boundary, so a ``:`` inside the token or
the logical key can never make two different pairs collide, and every key
of one token shares a plain byte prefix that SCAN can match on.
"""

from tokenkv.exceptions import InternalError, InvalidArgumentError

SEPARATOR = b":"


class NamespaceCodec:
    """Encodes and decodes namespaced backend keys."""

    encoding = "utf-8"

    def namespace(self, token: str) -> bytes:
        """Return the prefix shared by every backend key of ``token``."""
        raw = token.encode(self.encoding)
        return str(len(raw)).encode("ascii") + SEPARATOR + raw + SEPARATOR

    def encode(self, token: str, key: str) -> bytes:
        """Derive the backend key for ``key`` in the namespace of ``token``.

        Raises:
            InvalidArgumentError: The key (or token) is not encodable text,
                e.g. it holds a lone surrogate
        """
        try:
            return self.namespace(token) + key.encode(self.encoding)
        except UnicodeEncodeError as e:
            raise InvalidArgumentError("Key must be valid Unicode text") from e

    def prefix(self, token: str, key_prefix: str = "") -> bytes:
        """Backend prefix matching every key of ``token`` starting with ``key_prefix``."""
        return self.encode(token, key_prefix)

    def decode(self, token: str, backend_key: bytes) -> str | None:
        """Recover the logical key, or None if backend_key is outside the namespace.

        Raises:
            InternalError: The key is inside the namespace but is not valid text
        """
        namespace = self.namespace(token)
        if not backend_key.startswith(namespace):
            return None
        try:
            return backend_key[len(namespace):].decode(self.encoding)
        except UnicodeDecodeError as e:
            raise InternalError("Backend key in namespace is not valid UTF-8") from e
