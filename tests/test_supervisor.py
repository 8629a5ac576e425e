"""Connection supervisor — reconnect, liveness, and shutdown behavior.

Learn: Timings are shrunk to milliseconds so the real event loop can run
the full connect → fail → back off → reconnect cycle quickly.
"""

import asyncio

import pytest

from orderrelay.connection import (
    Backoff,
    ConnectionState,
    ConnectionSupervisor,
    Shutdown,
)


class FakeConnector:
    """Scripted connector: fails the first N connects, probes via `alive`."""

    def __init__(self, fail_connects=0, alive=None, probe_delay=0.0):
        self.fail_connects = fail_connects
        self.alive = alive or (lambda conn: True)
        self.probe_delay = probe_delay
        self.connect_calls = 0
        self.subscribed = []
        self.closed = []

    async def connect(self):
        self.connect_calls += 1
        if self.connect_calls <= self.fail_connects:
            raise ConnectionRefusedError("connection refused")
        return f"conn-{self.connect_calls}"

    async def subscribe(self, conn):
        self.subscribed.append(conn)

    async def is_alive(self, conn):
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        return self.alive(conn)

    async def close(self, conn):
        self.closed.append(conn)


class PumpingConnector(FakeConnector):
    """Connector whose message loop ends immediately on the first connection."""

    async def pump(self, conn):
        if conn == "conn-1":
            raise ConnectionResetError("stream reset")
        await asyncio.Event().wait()


def _supervisor(connector, shutdown, **kwargs):
    kwargs.setdefault("backoff", Backoff(base=0.005, cap=0.02, multiplier=2.0))
    kwargs.setdefault("liveness_interval", 0.01)
    kwargs.setdefault("probe_timeout", 0.05)
    return ConnectionSupervisor("test", connector, shutdown, **kwargs)


async def _stop(supervisor, task):
    supervisor.shutdown.trigger()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_retries_until_connected_then_resets_backoff(eventually):
    """Connect failures back off and retry; success resets attempt to 0."""
    connector = FakeConnector(fail_connects=3)
    sup = _supervisor(connector, Shutdown())
    task = asyncio.create_task(sup.run())

    await eventually(lambda: sup.is_connected)

    assert connector.connect_calls == 4
    assert connector.subscribed == ["conn-4"]
    assert sup.attempt == 0
    assert sup.connection == "conn-4"
    assert sup.connects == 1

    await _stop(sup, task)
    assert connector.closed == ["conn-4"]
    assert sup.state == ConnectionState.DISCONNECTED
    assert sup.connection is None


@pytest.mark.asyncio
async def test_failed_liveness_reconnects_and_resubscribes(eventually):
    """A failed probe marks the connection degraded, closes it, reconnects."""
    connector = FakeConnector(alive=lambda conn: conn != "conn-1")
    sup = _supervisor(connector, Shutdown())

    states = []
    set_state = sup._set_state
    sup._set_state = lambda state: (states.append(state), set_state(state))

    task = asyncio.create_task(sup.run())
    await eventually(lambda: connector.subscribed == ["conn-1", "conn-2"])
    await eventually(lambda: sup.is_connected)

    assert "conn-1" in connector.closed
    assert ConnectionState.DEGRADED in states
    assert sup.connects == 2
    assert sup.attempt == 0

    await _stop(sup, task)


@pytest.mark.asyncio
async def test_probe_timeout_counts_as_dead(eventually):
    connector = FakeConnector(probe_delay=1.0)
    sup = _supervisor(connector, Shutdown(), probe_timeout=0.01)
    task = asyncio.create_task(sup.run())

    await eventually(lambda: len(connector.subscribed) >= 2)
    assert connector.closed[0] == "conn-1"

    await _stop(sup, task)


@pytest.mark.asyncio
async def test_pump_ending_triggers_reconnect(eventually):
    connector = PumpingConnector()
    sup = _supervisor(connector, Shutdown(), liveness_interval=5.0)
    task = asyncio.create_task(sup.run())

    await eventually(lambda: connector.subscribed == ["conn-1", "conn-2"])
    assert connector.closed == ["conn-1"]

    await _stop(sup, task)
    assert connector.closed == ["conn-1", "conn-2"]


@pytest.mark.asyncio
async def test_subscribe_failure_closes_and_retries(eventually):
    connector = FakeConnector()
    calls = {"n": 0}
    subscribe = connector.subscribe

    async def flaky_subscribe(conn):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("LISTEN failed")
        await subscribe(conn)

    connector.subscribe = flaky_subscribe
    sup = _supervisor(connector, Shutdown())
    task = asyncio.create_task(sup.run())

    await eventually(lambda: sup.is_connected)
    assert connector.closed[0] == "conn-1"
    assert connector.subscribed == ["conn-2"]

    await _stop(sup, task)


@pytest.mark.asyncio
async def test_shutdown_interrupts_backoff():
    """A long backoff wait ends as soon as shutdown is triggered."""
    connector = FakeConnector(fail_connects=10**6)
    shutdown = Shutdown()
    sup = _supervisor(connector, shutdown, backoff=Backoff(base=60.0, cap=60.0))
    task = asyncio.create_task(sup.run())

    await asyncio.sleep(0.02)
    assert connector.connect_calls == 1
    assert sup.attempt == 1

    shutdown.trigger()
    await asyncio.wait_for(task, timeout=1)
    assert connector.connect_calls == 1


@pytest.mark.asyncio
async def test_no_connect_after_shutdown():
    shutdown = Shutdown()
    shutdown.trigger()
    connector = FakeConnector()
    await asyncio.wait_for(_supervisor(connector, shutdown).run(), timeout=1)
    assert connector.connect_calls == 0


@pytest.mark.asyncio
async def test_close_error_does_not_escape(eventually):
    connector = FakeConnector(alive=lambda conn: conn != "conn-1")

    async def broken_close(conn):
        raise OSError("socket already gone")

    connector.close = broken_close
    sup = _supervisor(connector, Shutdown())
    task = asyncio.create_task(sup.run())

    await eventually(lambda: connector.subscribed == ["conn-1", "conn-2"])
    await _stop(sup, task)
