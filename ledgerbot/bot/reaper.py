import asyncio
from datetime import datetime
from typing import Callable

from loguru import logger

from ledgerbot.db.repository import LedgerRepository
from ledgerbot.models.schemas import Expense


class PendingExpenseReaper:
    """Settles pending expenses whose confirmation window has closed.

    Silence counts as agreement: an expired record is confirmed with the
    category the AI suggested. Records with no usable suggestion are discarded.
    """

    def __init__(
        self,
        ledger: LedgerRepository,
        interval_seconds: int = 30,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: asyncio.Task | None = None

    def reap(self) -> list[Expense]:
        now = self.clock()
        confirmed = []
        for pending in self.ledger.list_expired_pending(now):
            usable = (
                pending.value is not None
                and pending.suggested_category_id is not None
                and self.ledger.get_category(pending.suggested_category_id) is not None
            )
            if not usable:
                if self.ledger.discard_pending(pending.id):
                    logger.info("Discarded expired pending #{} without a usable suggestion", pending.id)
                continue

            expense = self.ledger.resolve_pending(pending.id, pending.suggested_category_id, expired_before=now)
            if expense is not None:
                logger.info("Pending #{} auto-confirmed as expense #{}", pending.id, expense.id)
                confirmed.append(expense)
        return confirmed

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="pending-expense-reaper")
            logger.info("Pending expense reaper started (every {}s)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Pending expense reaper stopped")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.reap)
            except Exception as e:
                logger.exception("Reaper pass failed: {}", e)
            await asyncio.sleep(self.interval_seconds)
