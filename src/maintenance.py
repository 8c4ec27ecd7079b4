"""Sweep orchestration: list expired access tokens, then bulk-delete them."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from access_tokens import RunOptions, flush, retrieve_expired
from connection import get_client
from errors import SweepError
from logger import get_logger

log = get_logger(__name__)


class SweepState(str, Enum):
    LISTING = "listing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SweepResult:
    state: SweepState
    deleted: int = 0
    scanned: int = 0
    error: str | None = None
    failed_stage: SweepState | None = None
    exception: SweepError | None = None

    @property
    def ok(self) -> bool:
        return self.state is SweepState.DONE


async def sweep(options: RunOptions, now: datetime | None = None) -> SweepResult:
    """Run listing then writing; the first failing stage ends the run."""
    state = SweepState.LISTING
    async with get_client(options) as client:
        try:
            await retrieve_expired(client, options, now)
            state = SweepState.WRITING
            deleted, scanned = await flush(client, options)
        except SweepError as e:
            log.error(str(e), extra={"extra": {"stage": state.value}})
            return SweepResult(
                SweepState.FAILED,
                scanned=options.batch.total_scanned,
                error=str(e),
                failed_stage=state,
                exception=e,
            )

    log.info("Done.")
    return SweepResult(SweepState.DONE, deleted=deleted, scanned=scanned)


def run_sweep(options: RunOptions, now: datetime | None = None) -> SweepResult:
    return asyncio.run(sweep(options, now))
