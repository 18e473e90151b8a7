"""Tests for stoplight._session — the consumer-facing session.

Test Techniques Used:
    - State Transition Testing: simulated toggle and real-connectivity
      requests against a running machine
    - Specification-based Testing: toggle labels and snapshot projection
    - Lifecycle Testing: stop() and context-manager exit
"""

from __future__ import annotations

import logging

import pytest

from stoplight._machine import LightState
from stoplight._monitor import ConnectivityEvent, ControllableMonitor, FixedMonitor
from stoplight._registry import DependencyRegistry
from stoplight._session import (
    SIMULATE_CONNECTED,
    SIMULATE_DISCONNECTED,
    SessionSnapshot,
    TrafficLightSession,
)
from stoplight.testing import FakeClock, MachineHarness

# ---------------------------------------------------------------------------
# SessionSnapshot
# ---------------------------------------------------------------------------


class TestSessionSnapshot:
    """Projection for the view layer."""

    @pytest.mark.parametrize(
        ("reversed_", "label"),
        [(False, SIMULATE_DISCONNECTED), (True, SIMULATE_CONNECTED)],
    )
    def test_toggle_label(self, reversed_: bool, label: str) -> None:
        snapshot = SessionSnapshot(
            light=LightState.GREEN,
            reversed=reversed_,
            using_real_connectivity=True,
        )
        assert snapshot.toggle_label == label

    def test_label_text(self) -> None:
        assert SIMULATE_CONNECTED == "Simulate Internet Connected"
        assert SIMULATE_DISCONNECTED == "Simulate Internet Disconnected"

    def test_to_dict(self) -> None:
        snapshot = SessionSnapshot(
            light=LightState.YELLOW,
            reversed=True,
            using_real_connectivity=False,
        )
        assert snapshot.to_dict() == {
            "light": "yellow",
            "reversed": True,
            "using_real_connectivity": False,
            "toggle_label": SIMULATE_CONNECTED,
        }


# ---------------------------------------------------------------------------
# Session control
# ---------------------------------------------------------------------------


class TestSimulatedToggle:
    """request_simulated_toggle() flips the direction via a fixed monitor.

    Technique: State Transition Testing.
    """

    def test_initial_snapshot(self) -> None:
        harness = MachineHarness.create()

        snapshot = harness.session.snapshot

        assert snapshot.light is LightState.GREEN
        assert snapshot.reversed is False
        assert snapshot.using_real_connectivity is True
        assert snapshot.toggle_label == SIMULATE_DISCONNECTED

    def test_toggle_forward_to_reversed(self) -> None:
        harness = MachineHarness.create()

        harness.session.request_simulated_toggle()

        snapshot = harness.session.snapshot
        assert snapshot.reversed is True
        assert snapshot.using_real_connectivity is False
        assert snapshot.toggle_label == SIMULATE_CONNECTED
        assert isinstance(harness.registry.get(), FixedMonitor)
        assert harness.registry.get().event is ConnectivityEvent.DISCONNECTED  # type: ignore[attr-defined]

    def test_toggle_twice_returns_forward(self) -> None:
        harness = MachineHarness.create()

        harness.session.request_simulated_toggle()
        harness.session.request_simulated_toggle()

        assert harness.session.snapshot.reversed is False
        assert harness.session.snapshot.using_real_connectivity is False

    def test_toggle_leaves_light_and_countdown(self) -> None:
        harness = MachineHarness.create()
        harness.advance(1.0)

        harness.session.request_simulated_toggle()

        assert harness.light is LightState.GREEN
        assert harness.advance(1.0) is LightState.RED

    def test_toggle_releases_live_monitor(self) -> None:
        harness = MachineHarness.create()

        harness.session.request_simulated_toggle()

        assert not harness.live.subscribed

    def test_live_events_ignored_while_simulating(self) -> None:
        harness = MachineHarness.create()
        harness.session.request_simulated_toggle()

        harness.live.satisfied()

        assert harness.session.snapshot.reversed is True


class TestRealConnectivity:
    """request_real_connectivity() re-arms the live monitor."""

    def test_restores_live_monitor(self) -> None:
        harness = MachineHarness.create()
        harness.session.request_simulated_toggle()

        harness.session.request_real_connectivity()

        assert harness.session.using_real_connectivity is True
        assert harness.registry.get() is harness.live
        assert harness.live.subscribed

    def test_live_value_replayed_on_rearm(self) -> None:
        harness = MachineHarness.create()
        harness.session.request_simulated_toggle()
        assert harness.session.snapshot.reversed is True

        harness.session.request_real_connectivity()

        # The live monitor has reported nothing, so the simulated
        # direction stands until the network says otherwise.
        assert harness.session.snapshot.reversed is True
        harness.live.satisfied()
        assert harness.session.snapshot.reversed is False

    def test_live_value_applied_when_known(self) -> None:
        harness = MachineHarness.create(initial=ConnectivityEvent.CONNECTED)
        harness.session.request_simulated_toggle()

        harness.session.request_real_connectivity()

        assert harness.session.snapshot.reversed is False

    def test_default_factory_is_live_monitor(self) -> None:
        from stoplight._monitor import LiveMonitor

        session = TrafficLightSession(clock=FakeClock(), registry=DependencyRegistry())
        assert session._live_monitor_factory is LiveMonitor
        session.stop()


# ---------------------------------------------------------------------------
# Listeners and lifecycle
# ---------------------------------------------------------------------------


class TestSessionListeners:
    """Session listeners receive projected snapshots."""

    def test_listener_receives_projection(self) -> None:
        harness = MachineHarness.create()
        seen: list[SessionSnapshot] = []
        harness.session.add_listener(seen.append)

        harness.session.request_simulated_toggle()
        harness.advance(2.0)

        assert seen == [
            SessionSnapshot(LightState.GREEN, True, False),
            SessionSnapshot(LightState.RED, True, False),
        ]

    def test_remove_listener(self) -> None:
        harness = MachineHarness.create()
        seen: list[SessionSnapshot] = []
        remove = harness.session.add_listener(seen.append)

        remove()
        harness.advance(2.0)

        assert seen == []

    def test_failing_listener_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        harness = MachineHarness.create()

        def explode(_snapshot: SessionSnapshot) -> None:
            raise RuntimeError("render failed")

        harness.session.add_listener(explode)
        with caplog.at_level(logging.ERROR):
            harness.advance(2.0)

        assert harness.light is LightState.YELLOW
        assert "Error in session listener" in caplog.text


class TestSessionLifecycle:
    """stop() and context-manager behaviour.

    Technique: Lifecycle Testing.
    """

    def test_context_manager_stops_machine(self) -> None:
        monitor = ControllableMonitor()
        clock = FakeClock()
        with TrafficLightSession(
            clock=clock, registry=DependencyRegistry(monitor)
        ) as session:
            assert session.machine.running

        assert not session.machine.running
        assert not monitor.subscribed
        assert clock.pending == 0

    def test_requests_after_stop_only_update_registry(self) -> None:
        harness = MachineHarness.create()
        harness.stop()

        harness.session.request_simulated_toggle()

        assert isinstance(harness.registry.get(), FixedMonitor)
        assert harness.machine.monitor is None
        assert harness.session.snapshot.reversed is False


class TestFailedRebind:
    """A control call whose monitor refuses the subscription.

    Technique: Error Condition Testing.
    """

    def test_live_monitor_outside_loop_keeps_simulated_state(self) -> None:
        """The default LiveMonitor needs a running loop to subscribe."""
        registry = DependencyRegistry(ControllableMonitor())
        session = TrafficLightSession(clock=FakeClock(), registry=registry)
        session.request_simulated_toggle()
        pinned = registry.get()
        seen: list[SessionSnapshot] = []
        session.add_listener(seen.append)

        with pytest.raises(RuntimeError):
            session.request_real_connectivity()

        assert session.machine.running
        assert session.machine.monitor is pinned
        assert pinned.subscribed  # type: ignore[attr-defined]
        assert registry.get() is pinned
        assert session.using_real_connectivity is False
        assert session.snapshot.reversed is True
        assert seen == []
        session.stop()

    def test_initial_monitor_kept_when_first_request_fails(self) -> None:
        first = ControllableMonitor()
        registry = DependencyRegistry(first)
        session = TrafficLightSession(clock=FakeClock(), registry=registry)

        with pytest.raises(RuntimeError):
            session.request_real_connectivity()

        assert session.machine.monitor is first
        assert first.subscribed
        assert registry.get() is first
        session.stop()


class TestFlagNotifications:
    """Changes to using_real_connectivity alone reach listeners."""

    def test_rearm_without_direction_change_notifies(self) -> None:
        harness = MachineHarness.create(initial=ConnectivityEvent.CONNECTED)
        harness.session.request_simulated_toggle()
        harness.session.request_simulated_toggle()
        seen: list[SessionSnapshot] = []
        harness.session.add_listener(seen.append)

        harness.session.request_real_connectivity()

        assert seen == [SessionSnapshot(LightState.GREEN, False, True)]
        harness.stop()

    def test_toggle_notifies_once(self) -> None:
        harness = MachineHarness.create()
        seen: list[SessionSnapshot] = []
        harness.session.add_listener(seen.append)

        harness.session.request_simulated_toggle()

        assert seen == [SessionSnapshot(LightState.GREEN, True, False)]
        harness.stop()

    def test_request_while_stopped_notifies_flag(self) -> None:
        harness = MachineHarness.create()
        harness.stop()
        seen: list[SessionSnapshot] = []
        harness.session.add_listener(seen.append)

        harness.session.request_simulated_toggle()

        assert seen == [SessionSnapshot(LightState.GREEN, False, False)]

    def test_repeated_request_is_silent(self) -> None:
        harness = MachineHarness.create()
        seen: list[SessionSnapshot] = []
        harness.session.add_listener(seen.append)

        harness.session.request_real_connectivity()

        assert seen == []
        harness.stop()
