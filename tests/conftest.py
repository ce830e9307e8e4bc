"""Shared fixtures: a controllable clock and a started room on simulated devices."""
import pytest

from room_core import InMemoryDevicePort, PanelState, RoomConfig, RoomController, SetPower


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.time = start

    def __call__(self) -> float:
        return self.time

    def advance(self, seconds: float, scheduler, run_due=None):
        """Move time forward, firing every timer at its own deadline."""
        run_due = run_due or scheduler.run_due
        end = self.time + seconds
        while True:
            deadline = scheduler.next_deadline()
            if deadline is None or deadline > end:
                break
            self.time = max(self.time, deadline)
            run_due()
        self.time = end
        run_due()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def device():
    return InMemoryDevicePort()


@pytest.fixture
def panel():
    return PanelState()


@pytest.fixture
def room_config():
    return RoomConfig()


@pytest.fixture
def controller(room_config, device, panel, clock):
    room = RoomController(room_config, device, panel=panel, clock=clock)
    room.start()
    yield room
    room.stop()


@pytest.fixture
def advance(clock, controller):
    def _advance(seconds: float):
        clock.advance(seconds, controller.scheduler, controller.run_due)
    return _advance


@pytest.fixture
def powered_on(controller, advance):
    """A room that has finished warming up."""
    controller.dispatch(SetPower(state=True))
    advance(controller.power.warmup_seconds() + 0.5)
    return controller
