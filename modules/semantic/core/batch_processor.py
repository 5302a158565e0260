"""
Batch Processor

Sequential, order-preserving batching for calls to external collaborators
(enrichment, embeddings). A failed batch is replaced by fallback values of the
same length, so results always align 1:1 with the input.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Sequence, TypeVar

from .errors import PipelineError

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


def split_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


class BatchProcessor:
    """
    Runs a handler over fixed-size batches, one at a time.

    Responsibilities:
    - Partition input into batches and call the handler per batch
    - Enforce a 1:1 positional result contract per batch
    - Substitute fallback results for failed batches
    - Sleep a fixed delay between batches (crude rate limit, no backoff)
    """

    def __init__(
        self,
        batch_size: int,
        delay: float = 0.0,
        failure_error: Callable[[int, str, BaseException], PipelineError] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize batch processor.

        Args:
            batch_size: Number of items per batch
            delay: Seconds to wait between consecutive batches
            failure_error: Factory wrapping a batch failure into a pipeline error for logging
            sleep: Sleep function (replaceable in tests)
        """
        self.batch_size = batch_size
        self.delay = delay
        self.failure_error = failure_error
        self.sleep = sleep

    def process(
        self,
        items: Sequence[T],
        handler: Callable[[List[T]], List[R]],
        fallback: Callable[[List[T], BaseException], List[R]],
        on_batch_done: Callable[[int, int], None] = None
    ) -> Dict[str, Any]:
        """
        Process items batch by batch.

        Args:
            items: Input items
            handler: Called with each batch; must return one result per input
            fallback: Called with (batch, error) when the handler fails
            on_batch_done: Called with (items_processed, total_items) after each batch

        Returns:
            Dict with 'results' (aligned with items), 'failed_batches' and 'batch_count'
        """
        batches = split_batches(items, self.batch_size)
        results: List[R] = []
        failed_batches = 0
        processed = 0

        for index, batch in enumerate(batches):
            try:
                batch_results = list(handler(batch))
                if len(batch_results) != len(batch):
                    raise ValueError(
                        f"expected {len(batch)} results, got {len(batch_results)}"
                    )
            except Exception as e:
                failed_batches += 1
                error = self.failure_error(index, str(e), e) if self.failure_error else e
                logger.error(f"❌ {error}")
                batch_results = list(fallback(batch, e))

            results.extend(batch_results)
            processed += len(batch)

            if on_batch_done:
                on_batch_done(processed, len(items))

            if self.delay > 0 and index < len(batches) - 1:
                self.sleep(self.delay)

        if len(results) != len(items):
            raise PipelineError(f"Batch results misaligned: {len(results)} results for {len(items)} items")

        return {
            'results': results,
            'failed_batches': failed_batches,
            'batch_count': len(batches),
        }
