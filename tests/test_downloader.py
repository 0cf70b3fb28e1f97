import asyncio
import os
from datetime import datetime

import pytest

from autosr.exceptions import DownloaderError
from autosr.media.downloader import Downloader, ProcessHandle, build_command, output_path
from autosr.models.config import AppConfig

DAY = datetime(2024, 5, 1, 21, 30)

posix_only = pytest.mark.skipif(os.name == "nt", reason="needs a POSIX shell")


def test_output_path_first_recording_has_no_suffix(tmp_path):
    path = output_path(tmp_path, "alice", now=DAY)

    assert path == tmp_path / "alice" / "2024-05-01-alice.ts"


def test_output_path_never_overwrites(tmp_path):
    folder = tmp_path / "alice"
    folder.mkdir()
    (folder / "2024-05-01-alice.ts").touch()

    assert output_path(tmp_path, "alice", now=DAY).name == "2024-05-01-alice 2.ts"

    (folder / "2024-05-01-alice 2.ts").touch()
    assert output_path(tmp_path, "alice", now=DAY).name == "2024-05-01-alice 3.ts"


def test_output_path_sanitizes_name(tmp_path):
    path = output_path(tmp_path, "a/b:c", now=DAY)

    assert path.parent.parent == tmp_path
    assert "/" not in path.parent.name
    assert ":" not in path.name


def test_build_command(tmp_path):
    config = AppConfig(
        save_to=str(tmp_path),
        download_with="streamlink",
        segment_threads=3,
        segment_timeout=20,
        http_timeout=15,
        user_agent="TestAgent/1.0",
    )

    args = build_command(config, "https://cdn.example.com/a.m3u8", "out.ts")

    assert args == [
        "streamlink",
        "--hls-segment-threads",
        "3",
        "--hls-segment-timeout",
        "20",
        "--http-timeout",
        "15",
        "--http-header",
        "User-Agent=TestAgent/1.0",
        "-o",
        "out.ts",
        "hlsvariant://https://cdn.example.com/a.m3u8",
        "best",
    ]


async def test_missing_program_raises_downloader_error(tmp_path):
    config = AppConfig(
        save_to=str(tmp_path), download_with=str(tmp_path / "no-such-program")
    )

    with pytest.raises(DownloaderError):
        await Downloader(config).start("https://cdn.example.com/a.m3u8", "alice")

    assert (tmp_path / "alice").is_dir()


async def _spawn(*args: str) -> ProcessHandle:
    process = await asyncio.create_subprocess_exec(*args)
    return ProcessHandle(process, os.path.basename(args[0]), "out.ts")


@posix_only
async def test_handle_kill_is_idempotent():
    handle = await _spawn("/bin/sh", "-c", "sleep 30")

    handle.kill()
    handle.kill()
    rc = await asyncio.wait_for(handle.wait(), timeout=5)

    assert handle.killed
    assert rc != 0
    handle.kill()


@posix_only
async def test_handle_reports_natural_exit():
    handle = await _spawn("/bin/sh", "-c", "exit 3")

    assert await asyncio.wait_for(handle.wait(), timeout=5) == 3
    handle.kill()
    assert not handle.killed
    assert repr(handle) == f"(sh pid {handle.pid})"
