from __future__ import annotations
from typing import Protocol, runtime_checkable

from .models import ChangeSet
from .state import OracleState


@runtime_checkable
class Repository(Protocol):
    async def init(self) -> None:
        ...

    async def load_state(self, deployer: str) -> OracleState:
        ...

    async def persist(self, changes: ChangeSet) -> None:
        ...
