import os
import tempfile
import time
import unittest

import chess

from chess_coach.engine_session import EnginePool, EngineSession, SessionState
from chess_coach.errors import EngineSpawnError
from chess_coach.uci import Evaluation

from engine_fakes import E5_REPLY, fake_settings

AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


class EngineSessionTests(unittest.TestCase):
    def setUp(self):
        fd, self.log_path = tempfile.mkstemp(suffix=".log")
        os.close(fd)

    def tearDown(self):
        os.unlink(self.log_path)

    def _log(self) -> list:
        with open(self.log_path, encoding="utf-8") as f:
            return [line.rstrip("\n") for line in f]

    def _session(self, *args, **overrides) -> EngineSession:
        return EngineSession.from_settings(fake_settings(*args, "--log", self.log_path, **overrides))

    def test_full_lifecycle(self):
        session = self._session(*E5_REPLY)
        res = session.analyze(AFTER_E4)
        self.assertEqual(res.best_move, "e7e5")
        self.assertEqual(res.evaluation, Evaluation("cp", -0.10))
        self.assertEqual(res.depth, 12)
        self.assertEqual(
            session.history,
            [
                SessionState.SPAWNED,
                SessionState.HANDSHAKE_SENT,
                SessionState.READY,
                SessionState.POSITION_SET,
                SessionState.SEARCHING,
                SessionState.COMPLETED,
                SessionState.TERMINATED,
            ],
        )
        received = [line[2:] for line in self._log() if line.startswith("< ")]
        self.assertEqual(
            received,
            [
                "uci",
                "setoption name Hash value 16",
                "setoption name Threads value 1",
                "isready",
                f"position fen {AFTER_E4}",
                "go movetime 200",
                "quit",
            ],
        )

    def test_nothing_is_sent_before_uciok(self):
        session = self._session(*E5_REPLY, "--handshake-delay", "0.3")
        session.analyze(chess.STARTING_FEN)
        log = self._log()
        ack = log.index("> uciok")
        for i, line in enumerate(log):
            if line.startswith(("< setoption", "< isready", "< position", "< go")):
                self.assertGreater(i, ack, line)

    def test_missing_handshake_never_sends_position(self):
        session = self._session("--mode", "no-handshake", handshake_timeout_s=0.3)
        res = session.analyze(chess.STARTING_FEN)
        self.assertIsNone(res.best_move)
        self.assertIsNone(res.evaluation)
        self.assertIn(SessionState.FORCE_TERMINATING, session.history)
        self.assertEqual(session.state, SessionState.TERMINATED)
        received = [line for line in self._log() if line.startswith("< ")]
        self.assertEqual(received, ["< uci", "< quit"])

    def test_silent_engine_times_out_at_budget_plus_grace(self):
        session = self._session("--mode", "silent")
        self.assertTrue(session.start())
        t0 = time.monotonic()
        res = session.search(chess.STARTING_FEN)
        elapsed = time.monotonic() - t0
        self.assertIsNone(res.best_move)
        self.assertGreaterEqual(elapsed, 0.2)
        self.assertLess(elapsed, 1.0)
        self.assertEqual(session.history[-2:], [SessionState.FORCE_TERMINATING, SessionState.TERMINATED])
        self.assertFalse(session.reusable)

    def test_mute_engine_is_bounded_by_handshake_timeout(self):
        session = self._session("--mode", "mute", handshake_timeout_s=0.3)
        t0 = time.monotonic()
        res = session.analyze(chess.STARTING_FEN)
        self.assertLess(time.monotonic() - t0, 2.0)
        self.assertIsNone(res.best_move)

    def test_engine_ignoring_quit_is_killed(self):
        session = self._session("--mode", "ignore-quit", kill_grace_s=0.2)
        with self.assertLogs("engine_session", level="WARNING") as cm:
            res = session.analyze(chess.STARTING_FEN)
        self.assertIsNone(res.best_move)
        self.assertTrue(any("killing" in m for m in cm.output))
        self.assertEqual(session.state, SessionState.TERMINATED)

    def test_spawn_failure_raises(self):
        session = EngineSession(["/nonexistent/engine-binary"])
        with self.assertRaises(EngineSpawnError):
            session.analyze(chess.STARTING_FEN)

    def test_search_requires_ready(self):
        with self.assertRaises(RuntimeError):
            EngineSession(["unused"]).search(chess.STARTING_FEN)


class EnginePoolTests(unittest.TestCase):
    def test_sessions_are_reused_with_reset(self):
        settings = fake_settings(*E5_REPLY)
        created = []

        def factory():
            s = EngineSession.from_settings(settings)
            created.append(s)
            return s

        pool = EnginePool(factory, size=1)
        try:
            first = pool.analyze(AFTER_E4)
            second = pool.analyze(AFTER_E4)
        finally:
            pool.close()
        self.assertEqual(first.best_move, "e7e5")
        self.assertEqual(second, first)
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].searches, 2)
        self.assertEqual(created[0].state, SessionState.TERMINATED)

    def test_timed_out_session_is_discarded(self):
        settings = fake_settings("--mode", "silent")
        created = []

        def factory():
            s = EngineSession.from_settings(settings)
            created.append(s)
            return s

        pool = EnginePool(factory, size=1)
        try:
            self.assertIsNone(pool.analyze(chess.STARTING_FEN).best_move)
            self.assertIsNone(pool.analyze(chess.STARTING_FEN).best_move)
        finally:
            pool.close()
        self.assertEqual(len(created), 2)


if __name__ == "__main__":
    unittest.main()
