"""Protocol interfaces for pluggable backends."""

from tokenkv.protocols.backend import Backend

__all__ = ["Backend"]
