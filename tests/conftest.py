"""Shared fakes for wally-vibe tests."""

import asyncio

from wally_vibe.models import SessionSource


class FakeDevice:
    """Device that records every intensity it receives, in order."""

    def __init__(self, name, calls, fail_on=None):
        self.name = name
        self._calls = calls
        self._fail_on = fail_on

    async def vibrate(self, intensity):
        if self._fail_on is not None and intensity == self._fail_on:
            raise RuntimeError(f"{self.name} refused {intensity}")
        self._calls.append(("vibrate", self.name, intensity))


class FakeSession:
    """Session over FakeDevices sharing one call log."""

    def __init__(self, device_names=("toy-a", "toy-b"), source=SessionSource.REMOTE,
                 fail_on=None, fail_stop=False):
        self.source = source
        self.calls = []
        self.device_reads = 0
        self.closed = False
        self._fail_stop = fail_stop
        self._devices = [FakeDevice(name, self.calls, fail_on) for name in device_names]

    @property
    def devices(self):
        self.device_reads += 1
        return list(self._devices)

    async def stop_all(self):
        if self._fail_stop:
            raise RuntimeError("stop refused")
        self.calls.append(("stop_all",))

    async def close(self):
        self.closed = True

    @property
    def vibrate_calls(self):
        return [call for call in self.calls if call[0] == "vibrate"]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records durations and logs into a call list."""

    def __init__(self, calls=None):
        self.durations = []
        self.calls = calls

    async def __call__(self, duration):
        self.durations.append(duration)
        if self.calls is not None:
            self.calls.append(("sleep", duration))


def session_factory(session):
    """Factory returning session immediately."""
    async def factory():
        return session
    return factory


def failing_factory(message="connection refused"):
    """Factory that fails right away."""
    async def factory():
        raise ConnectionRefusedError(message)
    return factory


def hanging_factory(started=None, cancelled=None):
    """Factory that never completes; flags start and cancellation on optional events."""
    async def factory():
        if started is not None:
            started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            if cancelled is not None:
                cancelled.set()
            raise
    return factory


def slow_cancel_factory(delay, finished=None):
    """Factory that never completes and takes delay seconds to wind down once cancelled."""
    async def factory():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await asyncio.sleep(delay)
            if finished is not None:
                finished.set()
            raise
    return factory
