from typing import Any, Awaitable, Generic, Protocol, TypeVar

from jobengine.config.logging import get_logger
from jobengine.v1.core.exceptions import ConfigurationError

logger = get_logger(__name__)

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name.

        Registering a name twice replaces the earlier implementation.
        """
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        replaced = name in self._implementations
        self._implementations[name] = implementation
        logger.info(
            "Registered implementation",
            registry=self.name,
            name=name,
            replaced=replaced,
        )

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job handlers - background processing entry points
class JobHandler(Protocol):
    """Protocol for job handlers.

    A handler receives the owning tenant and the job payload verbatim. Its
    return value is stored as the job result; raising marks the attempt as
    failed and hands the job to the retry policy.
    """

    def __call__(
        self, tenant_id: str, payload: dict[str, Any]
    ) -> Awaitable[Any] | Any: ...


class HandlerRegistry(Registry[JobHandler]):
    """Registry mapping job types to handlers.

    Constructed once per dispatcher and passed in explicitly, so independent
    dispatchers never share registrations.
    """

    def __init__(self):
        super().__init__("Job")

    def resolve(self, job_type: str) -> JobHandler:
        """Get the handler for a job type or raise ConfigurationError."""
        try:
            return self.get(job_type)
        except KeyError:
            raise ConfigurationError(
                f"no handler registered for job type: {job_type}",
                details={"type": job_type},
            ) from None
