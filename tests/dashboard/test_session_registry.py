"""Tests for the session registry."""

import asyncio

import pytest

from conftest import settle
from vitalwatch.dashboard.services.session_registry import SessionRegistry
from vitalwatch.domain.session import SessionState


@pytest.fixture
def registry(make_session):
    return SessionRegistry(lambda patient_id: make_session(patient_id=patient_id))


class TestSessionRegistry:
    """Test suite for SessionRegistry."""

    @pytest.mark.asyncio
    async def test_start_registers_active_session(self, registry):
        result = await registry.start("P1")

        assert result.is_success()
        assert result.value.state == SessionState.ACTIVE
        assert registry.patient_ids() == ["P1"]
        assert registry.active_count() == 1
        await registry.stop_all()

    @pytest.mark.asyncio
    async def test_start_is_idempotent_for_running_session(self, registry):
        await registry.start("P1")
        session = registry.get("P1")

        result = await registry.start("P1")

        assert result.is_success()
        assert registry.get("P1") is session
        await registry.stop_all()

    @pytest.mark.asyncio
    async def test_failed_start_is_not_registered(self, registry):
        result = await registry.start("UNKNOWN")

        assert result.is_failure()
        assert result.error_details["not_found"] is True
        assert registry.get("UNKNOWN") is None

    @pytest.mark.asyncio
    async def test_stop(self, registry):
        await registry.start("P1")
        session = registry.get("P1")

        result = await registry.stop("P1")

        assert result.is_success()
        assert session.state == SessionState.STOPPED
        assert registry.get("P1") is None

    @pytest.mark.asyncio
    async def test_stop_unknown(self, registry):
        result = await registry.stop("P1")

        assert result.is_failure()
        assert result.error_type == "SessionNotFound"

    @pytest.mark.asyncio
    async def test_stopped_session_is_replaced_on_start(self, registry, patient_data):
        patient_data.add_patient("P2")
        await registry.start("P1")
        await registry.start("P2")
        first = registry.get("P1")

        await registry.stop_all()
        assert registry.patient_ids() == []
        assert first.state == SessionState.STOPPED

        await registry.start("P1")
        assert registry.get("P1") is not first
        await registry.stop_all()

    @pytest.mark.asyncio
    async def test_slow_start_does_not_delay_other_patients(self, registry, patient_data, monkeypatch):
        patient_data.add_patient("SLOW")
        patient_data.add_patient("FAST")
        release = asyncio.Event()
        load_patient = patient_data.get_patient_by_id

        async def gated_load(patient_id):
            if patient_id == "SLOW":
                await release.wait()
            return await load_patient(patient_id)

        monkeypatch.setattr(patient_data, "get_patient_by_id", gated_load)
        slow_start = asyncio.create_task(registry.start("SLOW"))
        await settle()

        result = await asyncio.wait_for(registry.start("FAST"), timeout=1)

        assert result.is_success()
        assert registry.get("FAST").state == SessionState.ACTIVE
        assert registry.get("SLOW").state == SessionState.INITIALIZING

        release.set()
        assert (await slow_start).is_success()
        assert registry.active_count() == 2
        await registry.stop_all()

    @pytest.mark.asyncio
    async def test_concurrent_starts_for_one_patient_share_a_session(self, registry, patient_data, monkeypatch):
        load_patient = patient_data.get_patient_by_id
        loads = []

        async def counted_load(patient_id):
            loads.append(patient_id)
            await asyncio.sleep(0)
            return await load_patient(patient_id)

        monkeypatch.setattr(patient_data, "get_patient_by_id", counted_load)

        first, second = await asyncio.gather(registry.start("P1"), registry.start("P1"))

        assert first.is_success() and second.is_success()
        assert loads == ["P1"]
        assert registry.patient_ids() == ["P1"]
        await registry.stop_all()
