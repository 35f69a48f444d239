"""Tests for service wiring and the health endpoint."""
import pytest
from fastapi.testclient import TestClient

from ovpn_sync.events import UserChanged, UserEventKind
from ovpn_sync.main import app, build_services
from ovpn_sync.services.scheduler import SyncScheduler
from tests.fakes import FakeGateway


@pytest.fixture
def settings():
    from ovpn_sync.config import Settings

    return Settings(sync_interval_minutes=20, sync_max_workers=2, sync_protected_accounts="openvpn,ops")


def test_build_services_wires_components(settings, session_factory):
    gateway = FakeGateway()
    services = build_services(settings, gateway=gateway, session_factory=session_factory)

    scheduler = services["sync_scheduler"]
    assert isinstance(scheduler, SyncScheduler)
    assert scheduler.interval_minutes == 20
    assert scheduler.reconciler is services["user_reconciler"]
    assert scheduler.device_monitor is services["device_monitor"]
    assert services["user_reconciler"].max_workers == 2
    assert services["user_reconciler"].protected_accounts == {"openvpn", "ops"}
    assert services["vpn_gateway"] is gateway


@pytest.mark.asyncio
async def test_user_event_reaches_scheduler(settings, session_factory, make_user):
    alice = make_user("alice")
    gateway = FakeGateway()
    services = build_services(settings, gateway=gateway, session_factory=session_factory)

    services["event_bus"].publish(UserChanged(alice.id, UserEventKind.CREATED))
    await services["event_bus"].drain()

    assert "alice" in gateway.accounts
    assert services["sync_scheduler"].last_pass.trigger == "event"


def test_health(settings, session_factory):
    client = TestClient(app)
    services = build_services(settings, gateway=FakeGateway(), session_factory=session_factory)
    for name, service in services.items():
        setattr(app.state, name, service)
    try:
        body = client.get("/health").json()
    finally:
        for name in services:
            delattr(app.state, name)

    assert body["status"] == "ok"
    assert body["scheduler"]["is_running"] is False
    assert body["scheduler"]["interval_minutes"] == 20
