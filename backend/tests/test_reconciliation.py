"""
Tests for registry reconciliation and the sync scheduler.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from twin_engine.exceptions import InternalDataError, InvalidInputError, UnavailableError
from twin_engine.schemas.descriptors import ShellDescriptor, ShellDescriptorMetadata
from twin_engine.services.reconciliation import (
    ReconciliationPlan,
    ReconciliationScheduler,
    parse_timezone,
    plan,
)
from twin_engine.services.registry import ShellDescriptorService
from twin_engine.services.template_filler import TemplateFiller


def registry_entries(*ids: str) -> list[ShellDescriptor]:
    descriptors = []
    for aas_id in ids:
        descriptor = ShellDescriptor.create_default()
        descriptor.id = aas_id
        descriptor.idShort = f"old-{aas_id}"
        descriptors.append(descriptor)
    return descriptors


def live_rows(*ids: str) -> list[ShellDescriptorMetadata]:
    return [ShellDescriptorMetadata(id=aas_id, idShort=f"new-{aas_id}") for aas_id in ids]


class TestPlan:
    """Tests for the reconciliation diff."""

    def test_create_update_delete(self):
        """Test registry {A,B,C} against live {A,C,D}."""
        result = plan(registry_entries("A", "B", "C"), live_rows("A", "C", "D"))

        assert [m.id for m in result.to_create] == ["D"]
        assert [(d.id, m.id) for d, m in result.to_update] == [("A", "A"), ("C", "C")]
        assert result.to_delete == ["B"]

    def test_empty_registry(self):
        """Test everything live is created into an empty registry."""
        result = plan([], live_rows("A", "B"))
        assert [m.id for m in result.to_create] == ["A", "B"]
        assert result.to_update == []
        assert result.to_delete == []

    def test_nothing_live(self):
        """Test every registry entry is deleted when nothing is live."""
        assert plan(registry_entries("A"), []).to_delete == ["A"]

    @pytest.mark.parametrize("aas_id", [None, "", "  "])
    def test_live_without_id(self, aas_id):
        """Test live metadata without an id aborts the plan."""
        with pytest.raises(InternalDataError):
            plan(registry_entries("A"), [ShellDescriptorMetadata(id=aas_id)])

    def test_registry_without_id(self):
        """Test a registry entry without an id aborts the plan."""
        with pytest.raises(InternalDataError):
            plan([ShellDescriptor()], live_rows("A"))


def make_service(existing: list[ShellDescriptor], live: list[ShellDescriptorMetadata]):
    aggregator = MagicMock()
    aggregator.fetch_shell_descriptors = AsyncMock(return_value=live)
    templates = MagicMock()
    templates.get_shell_descriptor_template = AsyncMock(
        return_value=ShellDescriptor.create_default()
    )
    registry_client = MagicMock()
    registry_client.list_shell_descriptors = AsyncMock(return_value=existing)
    registry_client.create_shell_descriptor = AsyncMock()
    registry_client.update_shell_descriptor = AsyncMock()
    registry_client.delete_shell_descriptor = AsyncMock()
    return ShellDescriptorService(aggregator, templates, registry_client, TemplateFiller())


class TestSync:
    """Tests for ShellDescriptorService.sync."""

    @pytest.mark.asyncio
    async def test_sync_applies_plan(self):
        """Test creates, updates and deletes reach the registry."""
        service = make_service(registry_entries("A", "B", "C"), live_rows("A", "C", "D"))
        client = service.registry_client

        result = await service.sync()

        assert isinstance(result, ReconciliationPlan)
        created = [c.args[0] for c in client.create_shell_descriptor.await_args_list]
        assert [(d.id, d.idShort) for d in created] == [("D", "new-D")]
        assert created[0].endpoints[0].protocolInformation.href == service.href_for(
            result.to_create[0]
        )

        updated = [c.args[0] for c in client.update_shell_descriptor.await_args_list]
        assert [(d.id, d.idShort) for d in updated] == [("A", "new-A"), ("C", "new-C")]

        client.delete_shell_descriptor.assert_awaited_once_with("B")

    @pytest.mark.asyncio
    async def test_sync_stops_at_first_failure(self):
        """Test a failing write aborts the remaining writes."""
        service = make_service(registry_entries("A", "B"), live_rows("A", "C"))
        client = service.registry_client
        client.create_shell_descriptor.side_effect = UnavailableError("registry down")

        with pytest.raises(UnavailableError):
            await service.sync()

        client.update_shell_descriptor.assert_not_awaited()
        client.delete_shell_descriptor.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_without_changes_skips_template(self):
        """Test the template is only fetched when something is created."""
        service = make_service(registry_entries("A"), live_rows("A"))
        await service.sync()
        service.templates.get_shell_descriptor_template.assert_not_awaited()


class TestReconciliationScheduler:
    """Tests for ReconciliationScheduler."""

    @pytest.mark.asyncio
    async def test_disabled_run_is_skipped(self):
        """Test a disabled scheduler never syncs."""
        sync = AsyncMock()
        scheduler = ReconciliationScheduler(sync, enabled=False, cron="* * * * *")

        assert await scheduler.run_once() is None
        sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enabled_run(self):
        """Test an enabled scheduler returns the executed plan."""
        executed = ReconciliationPlan(to_delete=["B"])
        scheduler = ReconciliationScheduler(
            AsyncMock(return_value=executed), enabled=True, cron="* * * * *"
        )
        assert await scheduler.run_once() is executed

    def test_invalid_cron(self):
        """Test a malformed cron expression is rejected."""
        with pytest.raises(InvalidInputError):
            ReconciliationScheduler(AsyncMock(), enabled=True, cron="every minute")

    def test_invalid_timezone(self):
        """Test an unknown time zone is rejected."""
        with pytest.raises(InvalidInputError):
            parse_timezone("Mars/Olympus_Mons")

    def test_next_fire_time_in_zone(self):
        """Test fire times are computed in the configured zone."""
        scheduler = ReconciliationScheduler(
            AsyncMock(), enabled=True, cron="0 2 * * *", timezone="Europe/Berlin"
        )
        now = datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc)

        fire = scheduler.next_fire_time(now)

        assert fire == datetime(2024, 7, 2, 2, 0, tzinfo=ZoneInfo("Europe/Berlin"))
        assert fire.astimezone(timezone.utc).hour == 0

    def test_naive_now_uses_zone(self):
        """Test naive times are read in the configured zone."""
        scheduler = ReconciliationScheduler(
            AsyncMock(), enabled=True, cron="30 * * * *", timezone="Asia/Tokyo"
        )
        fire = scheduler.next_fire_time(datetime(2024, 1, 1, 9, 10))
        assert fire == datetime(2024, 1, 1, 9, 30, tzinfo=ZoneInfo("Asia/Tokyo"))

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Test the background task runs until stopped."""
        scheduler = ReconciliationScheduler(AsyncMock(), enabled=True, cron="0 0 1 1 *")

        scheduler.start()
        await asyncio.sleep(0)
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running

    def test_start_disabled_is_noop(self):
        """Test a disabled scheduler starts no task."""
        scheduler = ReconciliationScheduler(AsyncMock(), enabled=False, cron="* * * * *")
        scheduler.start()
        assert not scheduler.is_running
