import asyncio
import logging
from collections import Counter
from typing import Optional
from medcontrol.core.config import settings
from medcontrol.services.dose_cycle import DoseCycleEvaluator

logger = logging.getLogger(__name__)


class DoseMonitor:

    def __init__(
        self,
        storage,
        evaluator: DoseCycleEvaluator,
        interval_seconds: Optional[float] = None,
    ):
        self.storage = storage
        self.evaluator = evaluator
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.dose_check_interval_seconds
        )
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

#------This Function starts the recurring sweep---------
    def start(self) -> bool:
        if self.is_running:
            return False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Dose monitor started (every {self.interval_seconds}s)")
        return True

#------This Function stops the sweep and waits for it to finish---------
    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Dose monitor stopped")

#------This Function runs sweeps until stopped---------
    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"Dose monitor cycle error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

#------This Function evaluates every medication once---------
    async def run_sweep(self, now: Optional[int] = None) -> Counter:
        outcomes = Counter()
        medications = await self.storage.get_all_medications()

        for med in medications:
            try:
                outcome = await self.evaluator.evaluate(med, now=now)
                outcomes[outcome.value] += 1
            except Exception as e:
                outcomes["failed"] += 1
                logger.error(f"Dose monitor medication cycle error for {med.id}: {e}", exc_info=True)

        if outcomes["failed"] or outcomes["due_created"] or outcomes["missed"]:
            logger.info(f"Dose sweep over {len(medications)} medication(s): {dict(outcomes)}")
        return outcomes
