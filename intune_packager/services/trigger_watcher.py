"""On-demand processing driven by trigger files

Another process requests a run by touching ``Queue/{folder}.trigger``.
The watcher drains the queue one trigger at a time and exits once the
queue has stayed empty for a number of consecutive polls.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Set

from ..constants import DEFAULT_TRIGGER_IDLE_POLLS, DEFAULT_TRIGGER_POLL_INTERVAL, TRIGGER_SUFFIX
from ..models.result import BatchResult, OperationStatus
from ..utils.async_utils import Sleeper
from ..utils.file_utils import safe_remove
from .pipeline import LabelPipeline

logger = logging.getLogger(__name__)


class TriggerWatcher:
    """Polls the queue directory and runs the pipeline for each trigger"""

    def __init__(self, pipeline: LabelPipeline,
                 poll_interval: float = DEFAULT_TRIGGER_POLL_INTERVAL,
                 max_idle_polls: int = DEFAULT_TRIGGER_IDLE_POLLS,
                 sleep: Optional[Sleeper] = None):
        self.pipeline = pipeline
        self.path_resolver = pipeline.path_resolver
        self.poll_interval = poll_interval
        self.max_idle_polls = max_idle_polls
        self.sleep = sleep or asyncio.sleep
        self._stuck: Set[Path] = set()

    @property
    def queue_dir(self) -> Path:
        return self.path_resolver.get_queue_dir()

    def enqueue(self, folder_name: str) -> Path:
        """Request a run of ``folder_name``"""
        self.queue_dir.mkdir(parents=True, exist_ok=True)
        trigger = self.queue_dir / f"{folder_name}{TRIGGER_SUFFIX}"
        trigger.touch()
        return trigger

    def pending(self) -> List[Path]:
        """
        List queued triggers, oldest name first

        Files without the trigger suffix are removed. Subdirectories are
        left alone.
        """
        if not self.queue_dir.is_dir():
            return []

        triggers = []
        for entry in sorted(self.queue_dir.iterdir()):
            if entry.is_dir() or entry in self._stuck:
                continue
            if entry.name.endswith(TRIGGER_SUFFIX):
                triggers.append(entry)
            else:
                logger.info("Removing unexpected file from queue: %s", entry.name)
                safe_remove(entry)
        return triggers

    async def run(self) -> BatchResult:
        """
        Drain the queue until it has been idle for ``max_idle_polls`` polls

        Returns:
            BatchResult with one entry per processed trigger
        """
        batch = BatchResult(status=OperationStatus.IN_PROGRESS)
        idle_polls = 0

        while idle_polls < self.max_idle_polls:
            triggers = self.pending()
            if not triggers:
                idle_polls += 1
                logger.debug("Queue idle (%d/%d)", idle_polls, self.max_idle_polls)
                await self.sleep(self.poll_interval)
                continue

            idle_polls = 0
            for trigger in triggers:
                await self._handle(trigger, batch)

        logger.info("Trigger queue idle, processed %d request(s)", batch.total_operations)
        await self.pipeline.close_batch(batch)
        return batch

    async def _handle(self, trigger: Path, batch: BatchResult) -> None:
        folder_name = trigger.name[:-len(TRIGGER_SUFFIX)]

        if not folder_name or not self.path_resolver.get_title_dir(folder_name).is_dir():
            logger.warning("Dropping trigger for unknown folder: %s", folder_name)
            self._consume(trigger)
            return

        logger.info("Processing on-demand request: %s", folder_name)
        result = await self.pipeline.process_isolated(folder_name)
        batch.add_result(result)
        self._consume(trigger)

    def _consume(self, trigger: Path) -> None:
        if not safe_remove(trigger):
            # not removable, so never pick it up again in this session
            self._stuck.add(trigger)
