"""
Subprocess-backed fetch runners.

SubprocessRunner runs a command, forwards its stdout/stderr line by line to
the logger and maps a non-zero exit status (or a failure to start) to
FetchFailure. YtDlpRunner builds the yt-dlp command line.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from dlcache.exceptions import FetchFailure
from dlcache.fetch.base import FetchRunner
from dlcache.logging import get_logger

logger = get_logger(__name__)

# Generous per-line limit: progress output can get long
STREAM_LINE_LIMIT = 1024 * 1024


class SubprocessRunner(FetchRunner):
    """Runs an external command for each fetch.

    Subclasses implement build_command(). There is no timeout: the process
    runs until it exits. If the awaiting task is cancelled the process is
    killed.
    """

    def __init__(self, executable: str, extra_args: Sequence[str] = ()) -> None:
        """Initialize the runner.

        Args:
            executable: Program to run (looked up on PATH).
            extra_args: Additional arguments inserted before the identity.
        """
        self.executable = executable
        self.extra_args = list(extra_args)

    def build_command(self, identity: str, output_template: Path) -> list[str]:
        """Full argv for one fetch."""
        raise NotImplementedError

    async def run(self, identity: str, output_template: Path) -> None:
        command = self.build_command(identity, output_template)
        logger.info("Starting external fetch", executable=command[0], identity=identity)

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LINE_LIMIT,
            )
        except OSError as e:
            raise FetchFailure(
                f"Failed to start fetch process: {e}",
                context={"identity": identity, "executable": command[0]},
            ) from e

        try:
            await asyncio.gather(
                self._forward(proc.stdout, "stdout"),
                self._forward(proc.stderr, "stderr"),
            )
            returncode = await proc.wait()
        except asyncio.CancelledError:
            await self._kill(proc)
            raise
        except Exception as e:
            # e.g. an output line longer than STREAM_LINE_LIMIT
            await self._kill(proc)
            raise FetchFailure(
                f"Fetch process output could not be read: {e}",
                context={"identity": identity, "executable": command[0]},
            ) from e

        if returncode != 0:
            raise FetchFailure(
                f"Fetch process exited with status {returncode}",
                context={"identity": identity, "returncode": returncode},
            )
        logger.info("External fetch finished", identity=identity)

    async def _forward(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            if name == "stderr":
                logger.warning(line, stream=name)
            else:
                logger.info(line, stream=name)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        logger.warning("Killing fetch process", pid=proc.pid)
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()


class YtDlpRunner(SubprocessRunner):
    """Fetches media with yt-dlp."""

    def __init__(
        self,
        executable: str = "yt-dlp",
        format: str = "best",
        extra_args: Sequence[str] = (),
    ) -> None:
        super().__init__(executable, extra_args)
        self.format = format

    def build_command(self, identity: str, output_template: Path) -> list[str]:
        return [
            self.executable,
            "-o",
            str(output_template),
            "--restrict-filenames",
            "--newline",
            "--format",
            self.format,
            *self.extra_args,
            # The URL is never parsed as an option
            "--",
            identity,
        ]
