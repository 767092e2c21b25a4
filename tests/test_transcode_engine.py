"""
Tests for the FFmpeg engine with subprocesses and binary lookup mocked.
"""

import asyncio
import os
import subprocess
from unittest.mock import AsyncMock

import pytest

from clearframe.services.filter_pipeline import Dimensions
from clearframe.services.region_capture import Rectangle
from clearframe.services.transcode_engine import (
    EngineError,
    EngineExecError,
    EngineLoadError,
    EngineState,
    FFmpegEngine,
    parse_progress_line,
)
from clearframe.services.transcode_orchestrator import (
    JobState,
    SourceMedia,
    TranscodeJobOrchestrator,
)

MODULE = "clearframe.services.transcode_engine"


class FakeStream:
    """Minimal asyncio.StreamReader stand-in."""

    def __init__(self, lines):
        self._lines = list(lines)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for line in self._lines:
            yield line

    async def read(self):
        return b"".join(self._lines)


class FakeProcess:
    def __init__(self, stdout_lines, stderr=b"", returncode=0):
        self.stdout = FakeStream(stdout_lines)
        self.stderr = FakeStream([stderr])
        self.returncode = returncode

    async def wait(self):
        return self.returncode


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def binaries(mocker):
    """Pretend ffmpeg and ffprobe are installed and healthy."""
    mocker.patch(f"{MODULE}.shutil.which", side_effect=lambda name: f"/usr/bin/{name}")
    return mocker.patch(f"{MODULE}.subprocess.run", return_value=completed(stdout=b"10.0\n"))


@pytest.fixture
def engine(tmp_path):
    return FFmpegEngine(working_directory=str(tmp_path / "engine"))


class TestParseProgressLine:
    """Tests for -progress output parsing."""

    def test_out_time(self):
        assert parse_progress_line("out_time_us=2500000\n", 10.0) == pytest.approx(0.25)

    def test_end(self):
        assert parse_progress_line("progress=end", None) == 1.0

    def test_capped(self):
        assert parse_progress_line("out_time_us=12000000", 10.0) == 1.0

    def test_unknown_duration(self):
        assert parse_progress_line("out_time_us=2500000", None) is None

    @pytest.mark.parametrize(
        "line",
        ["out_time_us=N/A", "frame=12", "progress=continue", "", "speed=1.2x"],
    )
    def test_ignored_lines(self, line):
        assert parse_progress_line(line, 10.0) is None


class TestLoad:
    """Tests for the engine lifecycle."""

    def test_initial_state(self, engine):
        assert engine.state == EngineState.UNLOADED
        assert not engine.is_ready()

    @pytest.mark.asyncio
    async def test_load_success(self, engine, binaries, tmp_path):
        await engine.load()
        assert engine.state == EngineState.READY
        assert (tmp_path / "engine").is_dir()
        assert engine.last_error is None

    @pytest.mark.asyncio
    async def test_load_is_idempotent(self, engine, binaries):
        await engine.load()
        await engine.load()
        assert binaries.call_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_attempt(self, engine, binaries):
        await asyncio.gather(engine.load(), engine.load(), engine.load())
        assert engine.state == EngineState.READY
        assert binaries.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_ffmpeg(self, engine, mocker):
        mocker.patch(f"{MODULE}.shutil.which", return_value=None)
        with pytest.raises(EngineLoadError):
            await engine.load()
        assert engine.state == EngineState.LOAD_FAILED
        assert "ffmpeg not found" in engine.last_error

    @pytest.mark.asyncio
    async def test_ffmpeg_fails_to_start(self, engine, mocker):
        mocker.patch(f"{MODULE}.shutil.which", side_effect=lambda name: f"/usr/bin/{name}")
        mocker.patch(f"{MODULE}.subprocess.run", return_value=completed(returncode=1, stderr=b"bad lib"))
        with pytest.raises(EngineLoadError):
            await engine.load()
        assert engine.state == EngineState.LOAD_FAILED

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, engine, mocker):
        which = mocker.patch(f"{MODULE}.shutil.which", return_value=None)
        with pytest.raises(EngineLoadError):
            await engine.load()

        which.side_effect = lambda name: f"/usr/bin/{name}"
        mocker.patch(f"{MODULE}.subprocess.run", return_value=completed())
        await engine.load()
        assert engine.state == EngineState.READY

    @pytest.mark.asyncio
    async def test_close_removes_workdir(self, engine, binaries, tmp_path):
        await engine.load()
        engine.close()
        assert not (tmp_path / "engine").exists()
        assert engine.state == EngineState.UNLOADED


class TestFiles:
    """Tests for working storage."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, engine, binaries, tmp_path):
        await engine.load()
        await engine.write_file("input_1.mp4", b"video")
        assert (tmp_path / "engine" / "input_1.mp4").read_bytes() == b"video"
        assert await engine.read_file("input_1.mp4") == b"video"

    @pytest.mark.asyncio
    async def test_read_missing(self, engine, binaries):
        await engine.load()
        with pytest.raises(FileNotFoundError):
            await engine.read_file("output_404.mp4")

    @pytest.mark.asyncio
    async def test_delete(self, engine, binaries, tmp_path):
        await engine.load()
        await engine.write_file("input_1.mp4", b"video")
        await engine.delete_file("input_1.mp4")
        assert not (tmp_path / "engine" / "input_1.mp4").exists()

        # Already gone
        await engine.delete_file("input_1.mp4")

    @pytest.mark.asyncio
    async def test_delete_rejects_paths(self, engine, binaries):
        await engine.load()
        with pytest.raises(ValueError):
            await engine.delete_file("../escape.mp4")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["../escape.mp4", "sub/dir.mp4", "", ".."])
    async def test_rejects_paths(self, engine, binaries, name):
        await engine.load()
        with pytest.raises(ValueError):
            await engine.write_file(name, b"x")

    @pytest.mark.asyncio
    async def test_requires_ready(self, engine):
        with pytest.raises(EngineError):
            await engine.write_file("input.mp4", b"x")
        with pytest.raises(EngineError):
            await engine.read_file("input.mp4")
        with pytest.raises(EngineError):
            await engine.exec(["-i", "input.mp4", "output.mp4"])


class TestExec:
    """Tests for running ffmpeg."""

    @pytest.mark.asyncio
    async def test_progress_reported(self, engine, binaries, mocker):
        await engine.load()
        process = FakeProcess([
            b"frame=10\n",
            b"out_time_us=N/A\n",
            b"out_time_us=5000000\n",
            b"progress=continue\n",
            b"progress=end\n",
        ])
        create = mocker.patch(
            f"{MODULE}.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=process,
        )

        fractions = []
        unsubscribe = engine.on_progress(fractions.append)
        await engine.exec(["-i", "input.mp4", "-vf", "delogo=x=1:y=1:w=5:h=5", "-c:a", "copy", "output.mp4"])
        unsubscribe()

        assert fractions == [pytest.approx(0.5), 1.0]
        cmd = create.call_args.args
        assert cmd[0] == "/usr/bin/ffmpeg"
        assert list(cmd[-8:]) == ["-i", "input.mp4", "-vf", "delogo=x=1:y=1:w=5:h=5", "-c:a", "copy", "output.mp4"]
        assert "-progress" in cmd
        assert create.call_args.kwargs["cwd"] == engine.working_directory

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, engine, binaries, mocker):
        await engine.load()
        mocker.patch(
            f"{MODULE}.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=FakeProcess([], stderr=b"Invalid argument", returncode=1),
        )
        with pytest.raises(EngineExecError, match="Invalid argument"):
            await engine.exec(["-i", "input.mp4", "output.mp4"])

    @pytest.mark.asyncio
    async def test_unsubscribe_and_failing_listener(self, engine, binaries, mocker):
        await engine.load()
        mocker.patch(
            f"{MODULE}.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=FakeProcess([b"progress=end\n"]),
        )

        def broken(fraction):
            raise RuntimeError("listener bug")

        received = []
        removed = []
        engine.on_progress(broken)
        engine.on_progress(received.append)
        unsubscribe = engine.on_progress(removed.append)
        unsubscribe()

        await engine.exec(["-i", "input.mp4", "output.mp4"])
        assert received == [1.0]
        assert removed == []


class TestStagedFileCleanup:
    """Jobs leave nothing behind in the engine working directory."""

    @pytest.fixture
    def source(self):
        return SourceMedia(
            filename="clip.mp4",
            data=b"video",
            mime_type="video/mp4",
            native_width=1920,
            native_height=1080,
        )

    @pytest.fixture
    def written_outputs(self, engine, monkeypatch):
        """Replace ffmpeg with a stub that writes the output file."""
        outputs = []

        async def fake_exec(args):
            path = os.path.join(engine.working_directory, args[-1])
            with open(path, "wb") as f:
                f.write(b"cleaned")
            outputs.append(args[-1])

        monkeypatch.setattr(engine, "exec", fake_exec)
        return outputs

    @pytest.mark.asyncio
    async def test_workdir_empty_after_jobs(self, engine, binaries, written_outputs, source):
        await engine.load()
        orchestrator = TranscodeJobOrchestrator(engine)
        region = Rectangle(id="r1", x=100, y=100, width=50, height=30)

        for _ in range(3):
            job = await orchestrator.process(source, [region], Dimensions(1920, 1080), Dimensions(800, 450))
            assert job.output.data == b"cleaned"

        assert len(written_outputs) == 3
        assert os.listdir(engine.working_directory) == []

    @pytest.mark.asyncio
    async def test_workdir_empty_after_failure(self, engine, binaries, source, monkeypatch):
        await engine.load()

        async def failing_exec(args):
            raise EngineExecError("FFmpeg failed (1): Invalid argument")

        monkeypatch.setattr(engine, "exec", failing_exec)
        orchestrator = TranscodeJobOrchestrator(engine)
        region = Rectangle(id="r1", x=100, y=100, width=50, height=30)
        job = orchestrator.begin(source, [region], Dimensions(1920, 1080), Dimensions(800, 450))
        await orchestrator.run(job)

        assert job.state == JobState.FAILED
        assert os.listdir(engine.working_directory) == []
