"""
Runner supervision - spawn the child, pump its pipes, enforce the timeout.

A RunnerProcess owns exactly one child process. The request body is
written to the child's stdin and stdin is closed before anything is read
back. Stdout and stderr are then drained together through a selector, so
a child that fills one pipe while the other is being read never blocks.

Usage:
    with RunnerProcess("python3", "/srv/bridge/runner.py", cwd="/srv/bridge") as runner:
        result = runner.communicate(b'{"type": "ping"}')

Leaving the block kills the child if it is still running, reaps it and
closes every pipe, whatever the exit path.
"""

import logging
import os
import selectors
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from bridge.errors import OutputTooLarge, RunnerMissing, RunnerTimeout, SpawnFailed
from bridge.interpreter import split_command

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536
USE_PROCESS_GROUP = hasattr(os, "killpg")


@dataclass
class RunResult:
    """Outcome of one completed runner invocation."""
    exit_code: int
    stdout: bytes
    stderr: bytes
    elapsed: float

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class RunnerProcess:
    """Supervise a single runner subprocess under a wall-clock timeout."""

    def __init__(
        self,
        interpreter: str,
        script: Optional[str],
        cwd: Optional[str] = None,
        timeout: float = 60.0,
        poll_interval: float = 0.02,
        max_output_bytes: int = 0,
        args: Sequence[str] = ()
    ):
        """
        Initialize runner configuration.

        Args:
            interpreter: Resolved interpreter invocation, e.g. 'python3'
            script: Path of the script the interpreter runs, None to run args alone
            cwd: Working directory for the child, defaults to the script's directory
                (required when there is no script)
            timeout: Maximum wall-clock seconds for write, run and drain
            poll_interval: Longest single wait on the pipes
            max_output_bytes: Cap on captured stdout+stderr, 0 for no cap
            args: Extra arguments after the script, e.g. ('-m', 'pip', ...) without one
        """
        if script is None and cwd is None:
            raise ValueError("cwd is required when no script is given")
        self.interpreter = interpreter
        self.script = script
        self.args = list(args)
        self.cwd = cwd or os.path.dirname(os.path.abspath(script))
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_output_bytes = max_output_bytes
        self.process: Optional[subprocess.Popen] = None
        self._stdout = bytearray()
        self._stderr = bytearray()

    def start(self) -> 'RunnerProcess':
        """
        Spawn the child with three pipes.

        Returns:
            self for method chaining

        Raises:
            RunnerMissing: If the script does not exist (nothing is spawned)
            SpawnFailed: If the operating system refuses to create the process
        """
        argv = split_command(self.interpreter)
        if self.script is not None:
            if not os.path.isfile(self.script):
                raise RunnerMissing(f"{os.path.basename(self.script)} not found")
            argv.append(self.script)
        argv += self.args
        try:
            self.process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                start_new_session=USE_PROCESS_GROUP,
            )
        except OSError as e:
            logger.error(f"Failed to start runner {argv}: {e}")
            raise SpawnFailed(str(e)) from e

        logger.info(f"Runner started: pid={self.process.pid} cmd={argv}")
        return self

    def communicate(self, body: bytes) -> RunResult:
        """
        Feed the body to the child and collect its output.

        Args:
            body: Raw request bytes, forwarded unmodified

        Returns:
            RunResult with exit code and everything the child wrote

        Raises:
            RunnerTimeout: If the child is still running when the timeout elapses
            OutputTooLarge: If the child writes more than max_output_bytes
        """
        if self.process is None:
            raise RuntimeError("Runner not started. Call start() first.")

        started = time.monotonic()
        deadline = started + self.timeout

        self._write_input(body, deadline)

        with selectors.DefaultSelector() as selector:
            for stream, buffer in ((self.process.stdout, self._stdout), (self.process.stderr, self._stderr)):
                os.set_blocking(stream.fileno(), False)
                selector.register(stream, selectors.EVENT_READ, buffer)

            while True:
                self._drain(selector, self.poll_interval)

                if time.monotonic() > deadline:
                    self.kill()
                    logger.warning(f"Runner pid={self.process.pid} killed after {self.timeout}s timeout")
                    raise RunnerTimeout(
                        self.timeout,
                        stderr=self._decoded(self._stderr),
                        stdout=self._decoded(self._stdout),
                    )

                if self.process.poll() is not None:
                    break

            # Bytes written between the last poll and exit
            while self._drain(selector, 0):
                pass

        exit_code = self.process.wait()
        self._close_pipes()
        elapsed = time.monotonic() - started
        logger.info(f"Runner pid={self.process.pid} exited with code {exit_code} in {elapsed:.3f}s")

        return RunResult(
            exit_code=exit_code,
            stdout=bytes(self._stdout),
            stderr=bytes(self._stderr),
            elapsed=elapsed,
        )

    def _write_input(self, body: bytes, deadline: float) -> None:
        """Write the whole body to stdin, then close it to signal EOF."""
        stdin = self.process.stdin
        if body:
            fd = stdin.fileno()
            os.set_blocking(fd, False)
            view = memoryview(body)
            offset = 0
            with selectors.DefaultSelector() as selector:
                selector.register(fd, selectors.EVENT_WRITE)
                while offset < len(view):
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self.kill()
                        logger.warning(f"Runner pid={self.process.pid} killed while still reading input")
                        raise RunnerTimeout(self.timeout)
                    if not selector.select(min(remaining, self.poll_interval)):
                        continue
                    try:
                        offset += os.write(fd, view[offset:offset + CHUNK_SIZE])
                    except BlockingIOError:
                        continue
                    except BrokenPipeError:
                        logger.info(
                            f"Runner pid={self.process.pid} closed stdin after "
                            f"{offset} of {len(view)} bytes"
                        )
                        break
        stdin.close()

    def _drain(self, selector: selectors.BaseSelector, timeout: float) -> bool:
        """
        Read whatever is ready on the output pipes.

        Returns:
            True if any pipe produced data or reached EOF
        """
        if not selector.get_map():
            if timeout:
                time.sleep(timeout)
            return False

        progressed = False
        for key, _ in selector.select(timeout):
            try:
                chunk = os.read(key.fd, CHUNK_SIZE)
            except BlockingIOError:
                continue
            progressed = True
            if not chunk:
                selector.unregister(key.fileobj)
                continue
            key.data.extend(chunk)
            self._check_output_size()
        return progressed

    def _check_output_size(self) -> None:
        if not self.max_output_bytes:
            return
        if len(self._stdout) + len(self._stderr) > self.max_output_bytes:
            self.kill()
            logger.warning(
                f"Runner pid={self.process.pid} killed after exceeding "
                f"{self.max_output_bytes} bytes of output"
            )
            raise OutputTooLarge(self.max_output_bytes)

    @staticmethod
    def _decoded(buffer: bytearray) -> str:
        return bytes(buffer).decode("utf-8", errors="replace")

    def kill(self) -> None:
        """Force-kill the child and its process group if it is still running."""
        if self.process is None or self.process.poll() is not None:
            return
        try:
            if USE_PROCESS_GROUP:
                os.killpg(self.process.pid, signal.SIGKILL)
            else:
                self.process.kill()
        except ProcessLookupError:
            pass

    def _close_pipes(self) -> None:
        for stream in (self.process.stdin, self.process.stdout, self.process.stderr):
            if stream is not None and not stream.closed:
                stream.close()

    def close(self) -> None:
        """Kill if needed, reap the child and release every pipe."""
        if self.process is None:
            return
        self.kill()
        try:
            self._close_pipes()
        finally:
            self.process.wait()

    def __enter__(self) -> 'RunnerProcess':
        """Context manager entry."""
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
