"""
CoachService: engine analysis for one ply plus natural-language advice.

review() asks the coordinator for the position before the move (what the engine would have
played) and the position after it (evaluation now), then asks the commentator about the
move actually played. Commentary failures degrade to ADVICE_UNAVAILABLE.
"""
from __future__ import annotations

import logging
from typing import Optional

import chess

from .commentary import Commentator
from .coordinator import AnalysisCoordinator, SideContext
from .errors import CommentaryError
from .replay import Game, clamp_ply, color_code, move_played_at

log = logging.getLogger("coach")

ADVICE_UNAVAILABLE = "advice unavailable"


class CoachService:
    def __init__(self, coordinator: AnalysisCoordinator, commentator: Optional[Commentator] = None):
        self.coordinator = coordinator
        self.commentator = commentator

    def review(self, game: Game, ply: int, human_color: chess.Color = chess.WHITE) -> dict:
        ply = clamp_ply(game, ply)
        side = SideContext.for_ply(game, ply, human_color)
        now = self.coordinator.analyze(game, ply, side)
        before = None
        if ply > 0:
            before = self.coordinator.analyze(game, ply - 1, SideContext.for_ply(game, ply - 1, human_color))
        actual_move = move_played_at(game, ply)

        advice, available = None, False
        if before is not None and actual_move:
            advice, available = self._advice(now, before, actual_move, side)

        return {
            "input": {"fen": now.fen, "ply": ply, "userColor": color_code(human_color)},
            "engine": now.to_json(),
            "previous": before.to_json() if before is not None else None,
            "actualMove": actual_move,
            "mover": color_code(side.mover),
            "advice": advice,
            "adviceAvailable": available,
        }

    def _advice(self, now, before, actual_move: str, side: SideContext) -> tuple[str, bool]:
        cached = self.coordinator.commentary_for(now, before.fen, actual_move)
        if cached:
            return cached, True
        if self.commentator is None:
            return ADVICE_UNAVAILABLE, False
        try:
            text = self.commentator.advise(
                actual_move=actual_move,
                best_move=before.best_move_san or before.result.best_move,
                evaluation=now.evaluation_json,
                is_human_move=side.is_human_move,
            )
        except CommentaryError as e:
            log.warning("Commentary failed for ply %d: %s", now.ply, e)
            return ADVICE_UNAVAILABLE, False
        self.coordinator.attach_commentary(now, before.fen, actual_move, text)
        return text, True
