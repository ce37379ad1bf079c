from enum import Enum
from typing import Any, ClassVar, Generic, Protocol, TypeVar

from pydantic import BaseModel

# Base registry implementation
T = TypeVar("T")


def _key(name: Any) -> Any:
    # Enum members are stored under their value so tags read back from the
    # database resolve to the same entry.
    return name.value if isinstance(name, Enum) else name


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        name = _key(name)
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        name = _key(name)
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def __contains__(self, name: object) -> bool:
        return _key(name) in self._implementations

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobHandler(Protocol):
    """Protocol for job handlers that process scheduled jobs."""

    payload_model: ClassVar[type[BaseModel]]
    timeout_s: ClassVar[float | None]

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        """
        Handle a scheduled job.

        Args:
            payload: Job payload, already validated into ``payload_model``

        Returns:
            Optional result dictionary to store with the completed job
        """
        ...


class JobRegistry(Registry[JobHandler]):
    """Registry for job handlers keyed by job type."""

    def __init__(self):
        super().__init__("Job")
