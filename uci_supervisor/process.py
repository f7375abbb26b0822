"""
Ownership of a single engine subprocess and its standard streams.
"""
from __future__ import annotations

import logging
import os
import queue
import shutil
import subprocess
import threading
from typing import IO, Optional, Sequence, Tuple

from .errors import EngineIOError, EngineSpawnError, ResponseTimeout
from .protocol import encode_quit

logger = logging.getLogger(__name__)

# Seconds to wait for the engine to exit after `quit`, then after kill.
ENGINE_QUIT_TIMEOUT = 1.0
ENGINE_KILL_TIMEOUT = 1.0

_EOF = object()


def _pump_stdout(stream: IO[str], lines: "queue.Queue[object]") -> None:
    try:
        for raw in stream:
            lines.put(raw.rstrip("\r\n"))
    except (OSError, ValueError):
        pass
    finally:
        lines.put(_EOF)


def _drain_stderr(stream: IO[str], pid: int) -> None:
    try:
        for raw in stream:
            logger.debug("engine[%s] stderr: %s", pid, raw.rstrip())
    except (OSError, ValueError):
        pass


def _resolve_executable(path: str) -> Optional[str]:
    if os.path.isfile(path):
        return path
    return shutil.which(path)


class ProcessSupervisor:
    """
    Owns exactly one engine process at a time.

    Every spawned process gets its own line queue, fed by a reader thread.
    Dropping the queue on stop() means output from a torn-down process can
    never be read by a later exchange.
    """

    def __init__(self, start_grace: float = 0.1):
        self.start_grace = start_grace
        self._process: Optional[subprocess.Popen] = None
        self._lines: Optional["queue.Queue[object]"] = None
        self._path: Optional[str] = None
        self._args: Tuple[str, ...] = ()

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def start(self, path: Optional[str] = None, args: Optional[Sequence[str]] = None) -> None:
        """Spawn the engine. Raises EngineSpawnError if it is missing or dies at once."""
        path = path or self._path
        if not path:
            raise EngineSpawnError("no engine executable configured")
        args = tuple(args) if args is not None else self._args

        self.stop()

        executable = _resolve_executable(path)
        if executable is None:
            raise EngineSpawnError(f"engine executable not found: {path}")

        try:
            process = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise EngineSpawnError(f"failed to start {path}: {exc}") from exc

        self._path = path
        self._args = args
        lines: "queue.Queue[object]" = queue.Queue()
        threading.Thread(
            target=_pump_stdout,
            args=(process.stdout, lines),
            name=f"engine-{process.pid}-stdout",
            daemon=True,
        ).start()
        threading.Thread(
            target=_drain_stderr,
            args=(process.stderr, process.pid),
            name=f"engine-{process.pid}-stderr",
            daemon=True,
        ).start()
        self._process = process
        self._lines = lines

        if self.start_grace > 0:
            try:
                process.wait(timeout=self.start_grace)
            except subprocess.TimeoutExpired:
                pass
            else:
                code = process.returncode
                self.stop()
                raise EngineSpawnError(f"engine {path} exited immediately with code {code}")

        logger.info("started engine %s (pid %s)", path, process.pid)

    def is_alive(self) -> bool:
        process = self._process
        return (
            process is not None
            and process.poll() is None
            and process.stdin is not None
            and process.stdout is not None
            and not process.stdin.closed
        )

    def send(self, command: str) -> None:
        if not self.is_alive():
            raise EngineIOError(f"engine not alive, cannot send: {command}")
        stdin = self._process.stdin
        try:
            stdin.write(command + "\n")
            stdin.flush()
        except (OSError, ValueError) as exc:
            raise EngineIOError(f"write failed for {command!r}: {exc}") from exc
        logger.debug(">> %s", command)

    def read_line(self, timeout: float) -> str:
        """Return the next output line, waiting at most `timeout` seconds."""
        lines = self._lines
        if lines is None:
            raise EngineIOError("engine not started")
        try:
            item = lines.get(timeout=max(0.0, timeout))
        except queue.Empty:
            raise ResponseTimeout(f"no engine output within {timeout:.2f}s") from None
        if item is _EOF:
            raise EngineIOError("engine closed its output")
        logger.debug("<< %s", item)
        return item

    def stop(self) -> None:
        """Close the pipes and make sure the process is gone. Never raises."""
        process, self._process = self._process, None
        self._lines = None
        if process is None:
            return
        try:
            if process.stdin is not None:
                try:
                    process.stdin.write(encode_quit() + "\n")
                    process.stdin.flush()
                except (OSError, ValueError):
                    pass
                try:
                    process.stdin.close()
                except Exception:
                    pass
            try:
                process.wait(timeout=ENGINE_QUIT_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()
                try:
                    process.wait(timeout=ENGINE_KILL_TIMEOUT)
                except subprocess.TimeoutExpired:
                    logger.warning("engine pid %s did not exit after kill", process.pid)
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    try:
                        stream.close()
                    except Exception:
                        pass
        except Exception as exc:
            logger.debug("error during engine teardown: %s", exc)
        else:
            logger.info("stopped engine pid %s", process.pid)

    def restart(self, path: Optional[str] = None) -> None:
        """Tear down any current process, then spawn a fresh one."""
        self.stop()
        self.start(path)
