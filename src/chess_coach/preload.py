"""Whole-game cache warmup: analyze every ply in order, one at a time."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import chess

from .coordinator import AnalysisCoordinator, SideContext
from .replay import Game, move_played_at

log = logging.getLogger("preload")


@dataclass(frozen=True)
class PreloadedMove:
    ply: int
    fen: str
    best_move: Optional[str]  # SAN
    evaluation: Union[float, str, None]
    actual_move: Optional[str]  # SAN of the move that led here

    def to_json(self) -> dict:
        return {
            "ply": self.ply,
            "fen": self.fen,
            "bestMove": self.best_move,
            "evaluation": self.evaluation,
            "actualMove": self.actual_move,
        }


def preload_game(coordinator: AnalysisCoordinator, game: Game, human_color: chess.Color = chess.WHITE) -> List[PreloadedMove]:
    """Analyze plies 0..len(game) sequentially.

    Any error aborts the batch and propagates; partial results are never returned.
    """
    log.info("Analyzing %d plies", len(game))
    data: List[PreloadedMove] = []
    for ply in range(len(game) + 1):
        analysis = coordinator.analyze(game, ply, SideContext.for_ply(game, ply, human_color))
        data.append(PreloadedMove(
            ply=ply,
            fen=analysis.fen,
            best_move=analysis.best_move_san,
            evaluation=analysis.evaluation_json,
            actual_move=move_played_at(game, ply),
        ))
    log.info("Preloaded %d plies", len(data))
    return data
