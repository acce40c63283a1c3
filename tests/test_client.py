import unittest
from unittest.mock import MagicMock

from chess_coach.client import CoachClient
from chess_coach.debounce import SUPERSEDED


def http_returning(payload):
    http = MagicMock()
    http.post.return_value.json.return_value = payload
    return http


class CoachClientTests(unittest.TestCase):
    def test_rapid_navigation_sends_one_request(self):
        http = http_returning({"engine": {"bestMove": "e5"}})
        client = CoachClient("http://coach.test/", delay_s=0.05, session=http)
        futures = [client.analyze("1. e4 e5", ply) for ply in (1, 2, 1)]
        self.assertEqual(futures[-1].result(timeout=2), {"engine": {"bestMove": "e5"}})
        self.assertIs(futures[0].result(timeout=1), SUPERSEDED)
        self.assertIs(futures[1].result(timeout=1), SUPERSEDED)
        http.post.assert_called_once_with(
            "http://coach.test/analyze",
            json={"pgn": "1. e4 e5", "moveIndex": 1, "userColor": "w"},
            timeout=60.0,
        )

    def test_preload_returns_moves(self):
        http = http_returning({"message": "Preloaded 2 plies", "preloadedMoves": [{"ply": 0}, {"ply": 1}]})
        moves = CoachClient(session=http).preload("1. e4", user_color="b")
        self.assertEqual(moves, [{"ply": 0}, {"ply": 1}])
        args, kwargs = http.post.call_args
        self.assertEqual(args[0], "http://localhost:8060/preload")
        self.assertEqual(kwargs["json"], {"pgn": "1. e4", "userColor": "b"})
        self.assertIsNone(kwargs["timeout"])

    def test_http_errors_reach_the_caller(self):
        http = MagicMock()
        http.post.return_value.raise_for_status.side_effect = RuntimeError("500 Server Error")
        client = CoachClient(delay_s=0.01, session=http)
        with self.assertRaises(RuntimeError):
            client.analyze("1. e4", 1).result(timeout=2)


if __name__ == "__main__":
    unittest.main()
