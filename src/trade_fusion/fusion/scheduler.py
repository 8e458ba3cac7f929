"""Batch scheduler: bounded concurrency within a batch, fixed pacing between batches."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from trade_fusion.config import EngineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchResult(Generic[T, R]):
    """Outcome for one item. `error` is set when `value` is a substitute."""

    item: T
    value: R
    error: Exception | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class BatchScheduler:
    """
    Drives items through an async worker in fixed-size batches.

    Within a batch, calls run concurrently under a semaphore and are awaited
    together; a failing call is replaced by `on_failure(item, error)` rather
    than dropped. Batches run strictly in sequence with a fixed delay between
    them. There is no adaptive throttling on observed error rate.
    """

    def __init__(
        self,
        batch_size: int = 3,
        inter_batch_delay: float = 0.8,
        max_concurrency: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be >= 1")
        if inter_batch_delay < 0:
            raise ValueError("inter_batch_delay must be >= 0")
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.max_concurrency = max_concurrency
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: EngineConfig) -> "BatchScheduler":
        return cls(
            batch_size=config.batch_size,
            inter_batch_delay=config.inter_batch_delay,
            max_concurrency=config.max_concurrency,
        )

    async def run(
        self,
        items: Sequence[T],
        work: Callable[[T], Awaitable[R]],
        on_failure: Callable[[T, Exception], R],
        label: Callable[[T], str] = str,
    ) -> list[BatchResult[T, R]]:
        """
        Run `work` over every item.

        Args:
            items: Items to process, in priority order
            work: Async worker; may raise
            on_failure: Substitute producer for a failed item; must not raise
            label: Item name for logging

        Returns:
            One BatchResult per input item, in input order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results: list[BatchResult[T, R]] = []

        async def run_one(item: T) -> BatchResult[T, R]:
            async with semaphore:
                try:
                    return BatchResult(item=item, value=await work(item))
                except Exception as e:
                    logger.warning(f"{label(item)}: worker failed ({type(e).__name__}: {e}); substituting")
                    return BatchResult(item=item, value=on_failure(item, e), error=e)

        batches = [items[i : i + self.batch_size] for i in range(0, len(items), self.batch_size)]
        for index, batch in enumerate(batches):
            if index > 0 and self.inter_batch_delay > 0:
                logger.debug(f"Pacing {self.inter_batch_delay}s before batch {index + 1}")
                await self._sleep(self.inter_batch_delay)

            logger.info(f"Batch {index + 1}/{len(batches)}: {len(batch)} items")
            # gather preserves argument order, so results stay tied to their item
            results.extend(await asyncio.gather(*[run_one(item) for item in batch]))

        return results
