"""
Reconciliation Scheduler.

Keeps the persistent AAS registry in line with the live view the plugins
provide. A pass runs on a cron schedule as a background task owned by the
application lifespan.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from twin_engine.config import get_settings
from twin_engine.exceptions import InternalDataError, InvalidInputError
from twin_engine.schemas.descriptors import ShellDescriptor, ShellDescriptorMetadata

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Diff between registry and live descriptors, in live/registry order."""

    to_create: list[ShellDescriptorMetadata] = field(default_factory=list)
    to_update: list[tuple[ShellDescriptor, ShellDescriptorMetadata]] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)


def plan(
    registry: Iterable[ShellDescriptor],
    live: Iterable[ShellDescriptorMetadata],
) -> ReconciliationPlan:
    """
    Compute the changes that bring the registry in line with live data.

    Args:
        registry: Descriptors currently persisted in the registry
        live: Metadata the plugins currently report

    Returns:
        Live ids unknown to the registry are created, known ids are
        updated over their registry entry, and registry ids missing from
        live are deleted

    Raises:
        InternalDataError: If any descriptor on either side has no id
    """
    registry = list(registry)
    live = list(live)
    if any(not (descriptor.id or "").strip() for descriptor in registry):
        logger.error("One or more registry descriptors have missing ids")
        raise InternalDataError("Registry descriptor without id")
    if any(not (metadata.id or "").strip() for metadata in live):
        logger.error("One or more plugin metadata entries have missing ids")
        raise InternalDataError("Plugin shell metadata without id")

    existing = {descriptor.id: descriptor for descriptor in registry}
    live_ids = {metadata.id for metadata in live}

    result = ReconciliationPlan()
    for metadata in live:
        if metadata.id in existing:
            result.to_update.append((existing[metadata.id], metadata))
        else:
            result.to_create.append(metadata)
    result.to_delete = [descriptor.id for descriptor in registry if descriptor.id not in live_ids]
    return result


def parse_timezone(name: str) -> ZoneInfo:
    """
    Load a time zone by IANA name.

    Raises:
        InvalidInputError: If the zone is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInputError(f"Unknown time zone '{name}'") from e


class ReconciliationScheduler:
    """
    Runs registry reconciliation passes on a cron schedule.

    States: idle, waiting for the next fire time, running. A failing pass
    is logged and the loop waits for the next fire time.
    """

    def __init__(
        self,
        sync: Callable[[], Awaitable[ReconciliationPlan]],
        enabled: bool | None = None,
        cron: str | None = None,
        timezone: str | None = None,
    ):
        settings = get_settings()
        self.sync = sync
        self.enabled = enabled if enabled is not None else settings.sync_enabled
        self.cron = cron or settings.sync_cron
        if not croniter.is_valid(self.cron):
            raise InvalidInputError(f"Invalid cron expression '{self.cron}'")
        self.timezone = parse_timezone(timezone or settings.sync_timezone)
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire_time(self, now: datetime | None = None) -> datetime:
        """
        Compute the next fire time after ``now`` in the configured zone.

        Naive ``now`` values are taken to be in the configured zone.
        """
        now = now or datetime.now(self.timezone)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.timezone)
        return croniter(self.cron, now.astimezone(self.timezone)).get_next(datetime)

    async def run_once(self) -> ReconciliationPlan | None:
        """
        Run a single reconciliation pass.

        Returns:
            The executed plan, or None when synchronisation is disabled
        """
        if not self.enabled:
            logger.info("Skipping shell descriptor sync, synchronisation is disabled")
            return None
        executed = await self.sync()
        logger.info(
            f"Shell descriptor sync completed: {len(executed.to_create)} created, "
            f"{len(executed.to_update)} updated, {len(executed.to_delete)} deleted"
        )
        return executed

    def start(self) -> None:
        """Start the background loop; a no-op while disabled or running."""
        if not self.enabled:
            logger.info("Shell descriptor sync is disabled")
            return
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="shell-descriptor-sync")
        logger.info(f"Shell descriptor sync scheduled with '{self.cron}' ({self.timezone.key})")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Shell descriptor sync stopped")

    async def _loop(self) -> None:
        while True:
            now = datetime.now(self.timezone)
            delay = (self.next_fire_time(now) - now).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Shell descriptor sync failed: {e}")
