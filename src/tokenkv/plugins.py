"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from tokenkv.config import BackendConfig
from tokenkv.exceptions import ConfigError
from tokenkv.protocols import Backend

BACKEND_GROUP = "tokenkv.backends"


def discover_backends() -> dict[str, Any]:
    """Discover all registered backends.

    Returns:
        Dictionary mapping backend names to their classes
    """
    eps = entry_points(group=BACKEND_GROUP)
    return {ep.name: ep.load() for ep in eps}


def get_backend(name: str) -> Any:
    """Get a specific backend class by name.

    Args:
        name: The backend name (e.g., "redis", "memory")

    Returns:
        The backend class

    Raises:
        ConfigError: If the backend is not found
    """
    backends = discover_backends()
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ConfigError(f"Backend '{name}' not found. Available: {available}")
    return backends[name]


def create_backend(name: str, **kwargs: Any) -> Backend:
    """Create a Backend instance.

    Args:
        name: The backend name (e.g., "redis", "memory")
        **kwargs: Backend-specific configuration

    Returns:
        A Backend implementation
    """
    cls = get_backend(name)
    return cls(**kwargs)


def create_backend_from_config(config: BackendConfig) -> Backend:
    """Create the backend described by a BackendConfig."""
    return create_backend(config.backend, **config.model_dump(exclude={"backend"}))
