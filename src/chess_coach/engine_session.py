"""
UCI engine session: one external engine process driven end-to-end.

Lifecycle (SessionState):
  SPAWNED → HANDSHAKE_SENT → READY → POSITION_SET → SEARCHING → COMPLETED → TERMINATED
  with FORCE_TERMINATING → TERMINATED reachable from any state on a deadline.

- A reader thread moves stdout lines into a queue; every wait on that queue is bounded by a deadline.
- Options and searches are only written after "uciok" has been observed.
- A search that hits budget + grace without a bestmove line is force-terminated and yields
  an AnalysisResult with no best move (not an exception).
- Spawn failures raise EngineSpawnError.

EngineSession.analyze() is the single-use path (spawn, search once, quit).
EnginePool keeps started sessions alive and reuses them via ucinewgame/isready.
"""
from __future__ import annotations

import contextlib
import enum
import logging
import queue
import subprocess
import threading
import time
from typing import Callable, Iterator, List, Optional, Sequence

from . import uci
from .config import Settings
from .errors import EngineSpawnError
from .uci import AnalysisResult

log = logging.getLogger("engine_session")


class SessionState(enum.Enum):
    SPAWNED = "spawned"
    HANDSHAKE_SENT = "handshake_sent"
    READY = "ready"
    POSITION_SET = "position_set"
    SEARCHING = "searching"
    COMPLETED = "completed"
    FORCE_TERMINATING = "force_terminating"
    TERMINATED = "terminated"


class EngineSession:
    def __init__(
        self,
        command: Sequence[str],
        *,
        movetime_ms: int = 2000,
        grace_ms: int = 100,
        hash_mb: Optional[int] = 512,
        threads: Optional[int] = 4,
        handshake_timeout_s: float = 5.0,
        kill_grace_s: float = 1.0,
    ):
        self.command = list(command)
        self.movetime_ms = movetime_ms
        self.grace_ms = grace_ms
        self.hash_mb = hash_mb
        self.threads = threads
        self.handshake_timeout_s = handshake_timeout_s
        self.kill_grace_s = kill_grace_s

        self.state: Optional[SessionState] = None
        self.history: List[SessionState] = []
        self.output: List[str] = []  # raw lines of the current search
        self.searches = 0
        self._proc: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._eof = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineSession":
        return cls(
            settings.engine_command(),
            movetime_ms=settings.movetime_ms,
            grace_ms=settings.deadline_grace_ms,
            hash_mb=settings.engine_hash_mb,
            threads=settings.engine_threads,
            handshake_timeout_s=settings.handshake_timeout_s,
            kill_grace_s=settings.kill_grace_s,
        )

    # ---------------- Lifecycle -----------------
    @property
    def reusable(self) -> bool:
        return self.state == SessionState.READY and not self._eof and self._alive()

    def start(self) -> bool:
        """Spawn the process and complete the handshake.

        Returns False (after force-terminating) if the engine never acknowledged in time.
        """
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except (OSError, ValueError) as e:
            raise EngineSpawnError(f"Failed launching engine {self.command[0]!r}: {e}") from e
        self._transition(SessionState.SPAWNED)
        self._reader = threading.Thread(target=self._read_stdout, name="engine-stdout", daemon=True)
        self._reader.start()

        deadline = time.monotonic() + self.handshake_timeout_s
        self._send(uci.UCI)
        self._transition(SessionState.HANDSHAKE_SENT)
        if not self._wait_for(uci.UCIOK, deadline):
            log.warning("Engine did not acknowledge 'uci' within %.1fs", self.handshake_timeout_s)
            self._force_terminate()
            return False
        self._transition(SessionState.READY)
        if self.hash_mb:
            self._send(uci.setoption("Hash", self.hash_mb))
        if self.threads:
            self._send(uci.setoption("Threads", self.threads))
        if not self._sync(deadline):
            self._force_terminate()
            return False
        return True

    def search(self, fen: str) -> AnalysisResult:
        """Run one timed search from READY and parse its output."""
        lines, completed = self._run_search(fen)
        if self.state == SessionState.COMPLETED:
            self._transition(SessionState.READY)
        return uci.parse_search_output(lines, completed=completed)

    def analyze(self, fen: str) -> AnalysisResult:
        """Single-use path: spawn, handshake, search once, shut down, then parse."""
        try:
            if not self.start():
                return AnalysisResult.empty()
            lines, completed = self._run_search(fen)
        finally:
            self.close()
        return uci.parse_search_output(lines, completed=completed)

    def close(self) -> None:
        """Write quit and wait for exit, killing the process after kill_grace_s."""
        if self._proc is None or self.state == SessionState.TERMINATED:
            return
        self._shutdown()

    # ---------------- Search -----------------
    def _run_search(self, fen: str) -> tuple[List[str], bool]:
        if self.state != SessionState.READY:
            raise RuntimeError(f"search requires READY state, session is {self.state}")
        if self.searches:
            # reused process: reset hash/history and wait until the engine settles
            self._send(uci.UCINEWGAME)
            if not self._sync(time.monotonic() + self.handshake_timeout_s):
                self._force_terminate()
                return [], False
        self.searches += 1
        self.output = []
        self._send(uci.position_fen(fen))
        self._transition(SessionState.POSITION_SET)
        self._send(uci.go_movetime(self.movetime_ms))
        self._transition(SessionState.SEARCHING)
        deadline = time.monotonic() + (self.movetime_ms + self.grace_ms) / 1000
        if self._wait_for(uci.BESTMOVE, deadline):
            self._transition(SessionState.COMPLETED)
            return list(self.output), True
        log.warning("No bestmove within %dms (+%dms grace); terminating engine", self.movetime_ms, self.grace_ms)
        self._force_terminate()
        return list(self.output), False

    def _sync(self, deadline: float) -> bool:
        self._send(uci.ISREADY)
        if self._wait_for(uci.READYOK, deadline):
            return True
        log.warning("Engine did not answer 'isready' in time")
        return False

    # ---------------- Process I/O -----------------
    def _read_stdout(self) -> None:
        proc = self._proc
        try:
            for line in proc.stdout:
                self._lines.put(line.rstrip("\r\n"))
        except (OSError, ValueError):
            # pipe closed underneath us during shutdown
            pass
        finally:
            self._lines.put(None)

    def _send(self, line: str) -> None:
        if self._proc is None or self._proc.stdin is None or self._proc.stdin.closed:
            return
        log.debug(">> %s", line)
        try:
            self._proc.stdin.write(line + "\n")
            self._proc.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            log.debug("Engine stdin closed while writing %r: %s", line, e)

    def _wait_for(self, token: str, deadline: float) -> bool:
        """Consume output until a line starting with `token`, EOF, or the deadline."""
        while not self._eof:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                line = self._lines.get(timeout=remaining)
            except queue.Empty:
                return False
            if line is None:
                self._eof = True
                log.warning("Engine closed its output while waiting for %r", token)
                return False
            log.debug("<< %s", line)
            self.output.append(line)
            if line.split(" ", 1)[0] == token:
                return True
        return False

    def _alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def _force_terminate(self) -> None:
        self._transition(SessionState.FORCE_TERMINATING)
        self._shutdown()

    def _shutdown(self) -> None:
        proc = self._proc
        self._send(uci.QUIT)
        try:
            proc.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            log.warning("Engine ignored quit for %.1fs; killing pid %s", self.kill_grace_s, proc.pid)
            proc.kill()
            proc.wait()
        with contextlib.suppress(OSError, ValueError):
            proc.stdin.close()
        if self._reader is not None:
            self._reader.join(timeout=self.kill_grace_s)
        if self._reader is None or not self._reader.is_alive():
            with contextlib.suppress(OSError, ValueError):
                proc.stdout.close()
        self._transition(SessionState.TERMINATED)

    def _transition(self, state: SessionState) -> None:
        log.debug("engine session %s → %s", self.state.value if self.state else "-", state.value)
        self.state = state
        self.history.append(state)


SessionFactory = Callable[[], EngineSession]


class EnginePool:
    """Keeps up to `size` started sessions and hands them out one caller at a time.

    Callers are expected to bound concurrency themselves (the coordinator's limiter);
    the pool never holds more than `size` idle sessions.
    """

    def __init__(self, factory: SessionFactory, size: int):
        self._factory = factory
        self._size = size
        self._idle: List[EngineSession] = []
        self._lock = threading.Lock()
        self._closed = False

    def analyze(self, fen: str) -> AnalysisResult:
        with self.session() as s:
            if s is None:
                return AnalysisResult.empty()
            return s.search(fen)

    @contextlib.contextmanager
    def session(self) -> Iterator[Optional[EngineSession]]:
        with self._lock:
            s = self._idle.pop() if self._idle else None
        if s is None:
            s = self._factory()
            if not s.start():
                yield None
                return
        try:
            yield s
        finally:
            self._checkin(s)

    def _checkin(self, s: EngineSession) -> None:
        with self._lock:
            if s.reusable and not self._closed and len(self._idle) < self._size:
                self._idle.append(s)
                return
        s.close()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            idle, self._idle = self._idle, []
        for s in idle:
            s.close()
