from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from ..domain.interfaces import Repository
from ..domain.models import CallContext, ChangeSet, TxResult
from ..domain.state import OracleState

logger = logging.getLogger(__name__)


class LedgerService:
    """Single writer in front of OracleState.

    Transitions are applied one at a time, in arrival order, under one lock.
    A successful transition is persisted before the lock is released; if the
    write fails (or is cancelled) the transition is reverted from the prior
    values recorded in its ChangeSet and the error propagates. Reads take the
    same lock, so they never see a transition that is still being written.
    """

    def __init__(self, repo: Repository, deployer: str) -> None:
        self._repo = repo
        self._deployer = deployer
        self._state: Optional[OracleState] = None
        self._lock = asyncio.Lock()
        self._last_height: Optional[int] = None

    async def start(self) -> None:
        await self._repo.init()
        self._state = await self._repo.load_state(self._deployer)

    @property
    def state(self) -> OracleState:
        if self._state is None:
            raise RuntimeError("Ledger not started")
        return self._state

    def _check_height(self, ctx: CallContext) -> None:
        # Monotonic height is the environment's contract; only report violations
        if self._last_height is not None and ctx.height < self._last_height:
            logger.warning("height went backwards: %s -> %s (caller=%s)", self._last_height, ctx.height, ctx.caller)
        self._last_height = ctx.height

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[OracleState]:
        async with self._lock:
            yield self.state

    async def _commit(self, ctx: CallContext, changes: ChangeSet) -> None:
        # Shielded so a cancelled caller cannot interrupt the write halfway
        write = asyncio.ensure_future(self._repo.persist(changes))
        try:
            await asyncio.shield(write)
        except BaseException:
            if not write.done():
                # Caller was cancelled mid-write; let the write settle so memory follows disk
                await asyncio.wait({write})
            if write.cancelled() or write.exception() is not None:
                logger.error("persist failed, reverting transition (caller=%s)", ctx.caller, exc_info=True)
                self.state.revert(changes)
            raise

    async def _apply(self, ctx: CallContext, op: Callable[[OracleState], TxResult]) -> TxResult:
        async with self._lock:
            self._check_height(ctx)
            result = op(self.state)
            if result.ok and result.changes is not None:
                await self._commit(ctx, result.changes)
            return result

    async def register_sensor(self, ctx: CallContext, sensor_id: str, owner: str, energy_type: str) -> TxResult:
        return await self._apply(ctx, lambda s: s.register_sensor(ctx, sensor_id, owner, energy_type))

    async def deactivate_sensor(self, ctx: CallContext, sensor_id: str) -> TxResult:
        return await self._apply(ctx, lambda s: s.deactivate_sensor(ctx, sensor_id))

    async def submit_sensor_data(
        self,
        ctx: CallContext,
        sensor_id: str,
        asset_id: str,
        energy_output: int,
        timestamp: int,
    ) -> TxResult:
        return await self._apply(
            ctx, lambda s: s.submit_sensor_data(ctx, sensor_id, asset_id, energy_output, timestamp)
        )

    async def set_paused(self, ctx: CallContext, pause: bool) -> TxResult:
        return await self._apply(ctx, lambda s: s.set_paused(ctx, pause))

    async def set_oracle_operator(self, ctx: CallContext, new_operator: str) -> TxResult:
        return await self._apply(ctx, lambda s: s.set_oracle_operator(ctx, new_operator))

    async def transfer_admin(self, ctx: CallContext, new_admin: str) -> TxResult:
        return await self._apply(ctx, lambda s: s.transfer_admin(ctx, new_admin))
