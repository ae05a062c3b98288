"""Tests for the push sweep."""

import asyncio

import pytest

from conftest import PASS_TYPE, FakeGateway, StaticSigner, register
from wallet_sync.services.push_dispatcher import PushDispatcher
from wallet_sync.services.push_sender import ApnsTokenSigner, DeliveryOutcome

GYM_TYPE = "pass.com.example.gym"


def outcomes(report):
    return {r.push_token: r.outcome for r in report.results}


@pytest.mark.asyncio
async def test_tick_without_registrations_sends_nothing(store, gateway):
    signer = StaticSigner()
    dispatcher = PushDispatcher(store, gateway, signer)

    report = await dispatcher.run_tick()

    assert report.targets == 0
    assert report.passes_touched == 0
    assert gateway.sent == []
    assert signer.calls == 0


@pytest.mark.asyncio
async def test_rejected_push_does_not_stop_others(store, clock):
    clock.now = 100
    await register(store, "dev1", "ptok-bad", PASS_TYPE, "abc123")
    await register(store, "dev2", "ptok-good", PASS_TYPE, "abc123")
    gateway = FakeGateway(rejected={"ptok-bad"})
    dispatcher = PushDispatcher(store, gateway, StaticSigner())

    report = await dispatcher.run_tick()

    assert report.targets == 2
    assert report.delivered == 1
    assert report.failed == 1
    assert outcomes(report) == {
        "ptok-bad": DeliveryOutcome.REJECTED,
        "ptok-good": DeliveryOutcome.DELIVERED,
    }
    rejected = next(r for r in report.results if r.push_token == "ptok-bad")
    assert rejected.status_code == 410
    assert rejected.reason == "Unregistered"
    # Rejections do not unregister anything
    assert (await store.counts())["devices"] == 2


@pytest.mark.asyncio
async def test_tick_touches_passes_before_pushing(store, clock, gateway):
    clock.now = 100
    await register(store, "dev1", "ptok1", PASS_TYPE, "abc123")

    report = await PushDispatcher(store, gateway, StaticSigner()).run_tick()

    assert report.passes_touched == 1
    assert (await store.get_pass(PASS_TYPE, "abc123")).last_updated == 101
    updated = await store.list_updated_passes("dev1", PASS_TYPE, since=100)
    assert updated.serial_numbers == ["abc123"]


@pytest.mark.asyncio
async def test_transport_error_is_reported(store):
    await register(store, "dev1", "ptok-down", PASS_TYPE, "abc123")
    await register(store, "dev2", "ptok-up", PASS_TYPE, "abc123")
    gateway = FakeGateway(broken={"ptok-down"})

    report = await PushDispatcher(store, gateway, StaticSigner()).run_tick()

    assert outcomes(report)["ptok-down"] == DeliveryOutcome.TRANSPORT_ERROR
    assert outcomes(report)["ptok-up"] == DeliveryOutcome.DELIVERED
    assert report.failed == 1


@pytest.mark.asyncio
async def test_each_push_uses_its_pass_type_topic(store, gateway):
    await register(store, "dev1", "ptok1", PASS_TYPE, "card-1")
    await register(store, "dev1", "ptok1", PASS_TYPE, "card-2")
    await register(store, "dev1", "ptok1", GYM_TYPE, "gym-1")

    await PushDispatcher(store, gateway, StaticSigner("provider-jwt")).run_tick()

    assert sorted(gateway.sent) == [
        ("ptok1", GYM_TYPE, "provider-jwt"),
        ("ptok1", PASS_TYPE, "provider-jwt"),
    ]


@pytest.mark.asyncio
async def test_missing_signing_material_aborts_sends(store, gateway):
    await register(store, "dev1", "ptok1", PASS_TYPE, "abc123")
    dispatcher = PushDispatcher(store, gateway, ApnsTokenSigner(key_id=None, team_id=None))

    report = await dispatcher.run_tick()

    assert report.aborted
    assert report.passes_touched == 1
    assert gateway.sent == []
    assert dispatcher.running is False


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(store):
    await register(store, "dev1", "ptok-slow", PASS_TYPE, "abc123")
    gateway = FakeGateway(hanging={"ptok-slow"})
    dispatcher = PushDispatcher(store, gateway, StaticSigner())

    first = asyncio.create_task(dispatcher.run_tick())
    await gateway.started.wait()

    assert dispatcher.running is True
    second = await dispatcher.run_tick()
    assert second.overlapped is True
    assert len(gateway.sent) == 1

    gateway.release.set()
    report = await first
    assert report.delivered == 1
    assert dispatcher.running is False


@pytest.mark.asyncio
async def test_deadline_leaves_slow_pushes_unattempted(store):
    await register(store, "dev1", "ptok-slow", PASS_TYPE, "abc123")
    await register(store, "dev2", "ptok-fast", PASS_TYPE, "abc123")
    gateway = FakeGateway(hanging={"ptok-slow"})
    dispatcher = PushDispatcher(store, gateway, StaticSigner(), deadline_seconds=0.2)

    report = await dispatcher.run_tick()

    assert outcomes(report) == {
        "ptok-slow": DeliveryOutcome.NOT_ATTEMPTED,
        "ptok-fast": DeliveryOutcome.DELIVERED,
    }
    assert report.not_attempted == 1
    assert report.failed == 0
    assert gateway.in_flight == 0


@pytest.mark.asyncio
async def test_concurrency_is_bounded(store):
    for i in range(10):
        await register(store, f"dev{i}", f"ptok{i}", PASS_TYPE, "abc123")
    gateway = FakeGateway(delay=0.02)
    dispatcher = PushDispatcher(store, gateway, StaticSigner(), max_concurrency=3)

    report = await dispatcher.run_tick()

    assert report.delivered == 10
    assert gateway.max_in_flight == 3
