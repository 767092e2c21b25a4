"""
Pytest configuration and fixtures.
"""

import os
import sys
from contextlib import asynccontextmanager

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from clearframe.services.transcode_engine import (  # noqa: E402
    EngineExecError,
    EngineLoadError,
    EngineState,
)
from clearframe.services.transcode_orchestrator import SourceMedia  # noqa: E402


class FakeEngine:
    """
    In-memory TranscodeEngine.

    Records every call, emits scripted progress during exec and can be told
    to fail at one step ("load", "write", "exec", "read" or "delete").
    """

    def __init__(
        self,
        progress=(0.25, 0.5, 1.0),
        fail_on=None,
        output=b"cleaned-video-bytes",
        state=EngineState.READY,
    ):
        self._state = state
        self.progress = list(progress)
        self.fail_on = fail_on
        self.output = output
        self.calls = []
        self.files = {}
        self.written = {}
        self.last_error = None
        self._listeners = []

    @property
    def state(self):
        return self._state

    @property
    def listener_count(self):
        return len(self._listeners)

    async def load(self):
        self.calls.append(("load",))
        if self.fail_on == "load":
            self._state = EngineState.LOAD_FAILED
            self.last_error = "ffmpeg not found"
            raise EngineLoadError("ffmpeg not found")
        self._state = EngineState.READY

    def on_progress(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def write_file(self, name, data):
        self.calls.append(("write_file", name))
        if self.fail_on == "write":
            raise OSError("disk full")
        self.files[name] = data
        self.written[name] = data

    async def exec(self, args):
        args = list(args)
        self.calls.append(("exec", args))
        for fraction in self.progress:
            for listener in list(self._listeners):
                listener(fraction)
        if self.fail_on == "exec":
            raise EngineExecError("FFmpeg failed (1): Invalid argument")
        self.files[args[-1]] = self.output

    async def read_file(self, name):
        self.calls.append(("read_file", name))
        if self.fail_on == "read":
            raise FileNotFoundError(name)
        return self.files[name]

    async def delete_file(self, name):
        self.calls.append(("delete_file", name))
        if self.fail_on == "delete":
            raise OSError("permission denied")
        self.files.pop(name, None)

    @asynccontextmanager
    async def exclusive(self):
        yield

    def call_names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_engine():
    """A ready fake engine."""
    return FakeEngine()


@pytest.fixture
def sample_source():
    """A 1920x1080 source video."""
    return SourceMedia(
        filename="clip.mov",
        data=b"\x00\x00\x00\x18ftypqt  source-bytes",
        mime_type="video/quicktime",
        native_width=1920,
        native_height=1080,
    )
