"""Durable step execution: journaled results, retry with backoff, cancel checks."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from config.exceptions import ContractViolationError, RunCancelledError, StepFailedError
from models.database import Database
from workflow.cancellation import raise_if_cancelled

logger = logging.getLogger(__name__)


def batch_step_name(chapter_numbers: list[int]) -> str:
    return f"generate-chapters-{chapter_numbers[0]}-to-{chapter_numbers[-1]}"


def plan_batches(total_chapters: int, batch_size: int) -> list[list[int]]:
    """Partition chapters 1..total into consecutive batches."""
    return [
        list(range(start, min(start + batch_size, total_chapters + 1)))
        for start in range(1, total_chapters + 1, batch_size)
    ]


class StepRunner:
    """Runs named steps of one book's run at least once.

    A step that already completed (journaled in ``run_steps``) is not
    executed again; its recorded result is returned instead. Otherwise
    the step is attempted up to ``max_retries + 1`` times, waiting
    ``backoff * 2**attempt`` seconds between attempts. Writing the
    journal entry is part of the attempt, so step bodies must be safe
    to execute again. Contract violations and cancellation are never
    retried.
    """

    def __init__(
        self,
        db: Database,
        book_id: int,
        max_retries: int = 3,
        backoff: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.db = db
        self.book_id = book_id
        self.max_retries = max_retries
        self.backoff = backoff
        self._sleep = sleep
        self.executed: list[str] = []
        self.skipped: list[str] = []

    def completed_result(self, name: str) -> tuple[bool, Any]:
        raw = self.db.get_step_result(self.book_id, name)
        if raw is None:
            return False, None
        return True, json.loads(raw)

    async def run(self, name: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Execute ``fn`` as step ``name`` and return its JSON-serializable result.

        Raises:
            RunCancelledError: If the run was cancelled before the step started.
            ContractViolationError: Propagated without retry.
            StepFailedError: When every attempt failed.
        """
        done, result = self.completed_result(name)
        if done:
            logger.info("Step '%s' already completed for book %d, reusing result", name, self.book_id)
            self.skipped.append(name)
            return result

        raise_if_cancelled(self.book_id, self.db)

        attempts = self.max_retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                result = await fn()
                # An attempt only counts once its result is journaled
                self.db.record_step_result(self.book_id, name, json.dumps(result))
            except (ContractViolationError, RunCancelledError):
                raise
            except Exception as e:
                last_error = e
                if attempt + 1 >= attempts:
                    break
                delay = self.backoff * (2 ** attempt)
                logger.warning(
                    "Step '%s' attempt %d/%d failed: %s (retrying in %.1fs)",
                    name, attempt + 1, attempts, e, delay,
                )
                await self._sleep(delay)
                continue

            self.executed.append(name)
            logger.debug("Step '%s' completed on attempt %d", name, attempt + 1)
            return result

        logger.error("Step '%s' failed after %d attempts: %s", name, attempts, last_error)
        raise StepFailedError(name, attempts, last_error)
