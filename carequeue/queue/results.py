from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Confirmed(BaseModel, Generic[T]):
    """The store accepted a tentative change; ``value`` is what it persisted."""

    model_config = ConfigDict(frozen=True)

    value: T

    @property
    def ok(self) -> bool:
        return True


class RolledBack(BaseModel, Generic[T]):
    """The store rejected a tentative change and the local view was restored.

    ``previous`` is the snapshot put back (None when the change was an insert).
    """

    model_config = ConfigDict(frozen=True)

    previous: T | None = None
    error: str

    @property
    def ok(self) -> bool:
        return False

