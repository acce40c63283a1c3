import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

import chess

from chess_coach.coach import ADVICE_UNAVAILABLE, CoachService
from chess_coach.commentary import Commentator, build_messages
from chess_coach.coordinator import AnalysisCoordinator
from chess_coach.errors import CommentaryError
from chess_coach.replay import parse_game

from engine_fakes import E5_REPLY, CountingFactory, fake_settings


def completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class CommentatorTests(unittest.TestCase):
    def setUp(self):
        self.settings = fake_settings(commentary_retries=1, llm_model="test/model")

    def test_prompt_for_own_move(self):
        msgs = build_messages("e4", "d4", 0.3, is_human_move=True)
        self.assertEqual(msgs[0]["role"], "system")
        self.assertEqual(msgs[1]["content"], "I played e4. Engine best move was: d4. Eval now: 0.3. Give concise advice.")

    def test_prompt_for_opponent_move(self):
        msgs = build_messages("Nf6", None, "#-2", is_human_move=False)
        self.assertIn("My opponent played Nf6", msgs[1]["content"])
        self.assertIn("Engine best move was: none", msgs[1]["content"])
        self.assertIn("Eval now: #-2", msgs[1]["content"])

    def test_advise_returns_text(self):
        client = MagicMock()
        client.chat.completions.create.return_value = completion("  Develop your knights.  ")
        text = Commentator(self.settings, client=client).advise("e4", "e4", 0.2, True)
        self.assertEqual(text, "Develop your knights.")
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "test/model")
        self.assertEqual(kwargs["max_tokens"], self.settings.commentary_max_tokens)

    def test_failures_raise_commentary_error_after_retries(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = TimeoutError("slow")
        with self.assertRaises(CommentaryError):
            Commentator(fake_settings(commentary_retries=0), client=client).advise("e4", "e4", 0.2, True)
        self.assertEqual(client.chat.completions.create.call_count, 1)

    def test_empty_completion_is_an_error(self):
        client = MagicMock()
        client.chat.completions.create.return_value = completion("")
        with self.assertRaises(CommentaryError):
            Commentator(fake_settings(commentary_retries=0), client=client).advise("e4", "e4", 0.2, True)


class CoachServiceTests(unittest.TestCase):
    def setUp(self):
        settings = fake_settings(*E5_REPLY)
        self.factory = CountingFactory(settings)
        self.coordinator = AnalysisCoordinator(settings, session_factory=self.factory)
        self.game = parse_game("1. e4 e5")

    def test_review_with_advice(self):
        commentator = MagicMock()
        commentator.advise.return_value = "Good, you claimed the centre."
        body = CoachService(self.coordinator, commentator).review(self.game, 1, chess.WHITE)
        self.assertEqual(body["actualMove"], "e4")
        self.assertEqual(body["mover"], "w")
        self.assertEqual(body["engine"], {"bestMove": "e5", "evaluation": -0.1, "searchDepth": 12})
        self.assertEqual(body["previous"]["bestMove"], None)  # e7e5 is illegal from the start position
        self.assertEqual(body["advice"], "Good, you claimed the centre.")
        self.assertTrue(body["adviceAvailable"])
        kwargs = commentator.advise.call_args.kwargs
        self.assertTrue(kwargs["is_human_move"])
        self.assertEqual(kwargs["evaluation"], -0.1)

    def test_commentary_is_cached(self):
        commentator = MagicMock()
        commentator.advise.return_value = "Nice."
        coach = CoachService(self.coordinator, commentator)
        coach.review(self.game, 1, chess.WHITE)
        body = coach.review(self.game, 1, chess.WHITE)
        self.assertEqual(body["advice"], "Nice.")
        self.assertEqual(commentator.advise.call_count, 1)
        self.assertEqual(len(self.factory.created), 2)

    def test_transposed_games_get_advice_for_their_own_move(self):
        commentator = MagicMock()
        commentator.advise.side_effect = lambda **kw: f"about {kw['actual_move']}"
        coach = CoachService(self.coordinator, commentator)
        first = coach.review(parse_game("1. Nf3 Nf6 2. Nc3 Nc6"), 4, chess.WHITE)
        second = coach.review(parse_game("1. Nc3 Nc6 2. Nf3 Nf6"), 4, chess.WHITE)
        self.assertEqual(first["input"]["fen"], second["input"]["fen"])
        self.assertEqual(first["advice"], "about Nc6")
        self.assertEqual(second["actualMove"], "Nf6")
        self.assertEqual(second["advice"], "about Nf6")
        self.assertEqual(commentator.advise.call_count, 2)

    def test_commentary_failure_degrades(self):
        commentator = MagicMock()
        commentator.advise.side_effect = CommentaryError("down")
        body = CoachService(self.coordinator, commentator).review(self.game, 2, chess.WHITE)
        self.assertEqual(body["advice"], ADVICE_UNAVAILABLE)
        self.assertFalse(body["adviceAvailable"])
        self.assertEqual(body["engine"]["searchDepth"], 12)
        self.assertFalse(commentator.advise.call_args.kwargs["is_human_move"])

    def test_no_commentary_at_start_position(self):
        commentator = MagicMock()
        body = CoachService(self.coordinator, commentator).review(self.game, 0, chess.WHITE)
        commentator.advise.assert_not_called()
        self.assertIsNone(body["advice"])
        self.assertIsNone(body["previous"])
        self.assertIsNone(body["actualMove"])


if __name__ == "__main__":
    unittest.main()
