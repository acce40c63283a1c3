"""
Game parsing and position replay on top of python-chess.

- parse_game(): PGN text → immutable Game (start FEN + SAN/UCI move lists).
- position_at()/board_at(): replay the first `ply` moves from the start position on every call.
- uci_to_san(): move code → SAN for a given FEN; returns None instead of raising.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Optional

import chess
import chess.pgn

from .errors import InvalidGameError

log = logging.getLogger("replay")


@dataclass(frozen=True)
class Game:
    start_fen: str
    moves: tuple[str, ...]        # SAN
    move_codes: tuple[str, ...]   # UCI
    headers: dict = field(default_factory=dict, compare=False, hash=False)

    def __len__(self) -> int:
        return len(self.moves)


def parse_game(text: str) -> Game:
    """Parse PGN (or bare movetext) into a Game. Raises InvalidGameError when no move is recognised."""
    pgn = chess.pgn.read_game(io.StringIO(text or ""))
    if pgn is None:
        raise InvalidGameError("no game found in input")
    try:
        board = pgn.board()
    except ValueError as e:
        raise InvalidGameError(f"bad FEN header: {e}") from e
    start_fen = board.fen()
    sans: list[str] = []
    codes: list[str] = []
    for mv in pgn.mainline_moves():
        sans.append(board.san(mv))
        codes.append(mv.uci())
        board.push(mv)
    if pgn.errors:
        log.warning("PGN parsed with %d error(s); kept %d move(s): %s", len(pgn.errors), len(sans), pgn.errors[0])
    if not sans:
        raise InvalidGameError("no moves recognised in game text")
    return Game(start_fen=start_fen, moves=tuple(sans), move_codes=tuple(codes), headers=dict(pgn.headers))


def clamp_ply(game: Game, ply: int) -> int:
    return max(0, min(int(ply), len(game)))


def board_at(game: Game, ply: int) -> chess.Board:
    """Board after the first `ply` moves (ply is clamped to [0, len(game)])."""
    board = chess.Board(game.start_fen)
    for code in game.move_codes[:clamp_ply(game, ply)]:
        board.push(chess.Move.from_uci(code))
    return board


def position_at(game: Game, ply: int) -> str:
    return board_at(game, ply).fen()


def move_played_at(game: Game, ply: int) -> Optional[str]:
    """SAN of the move that led to `ply`, or None at the start position."""
    ply = clamp_ply(game, ply)
    return game.moves[ply - 1] if ply > 0 else None


def mover_at(game: Game, ply: int) -> Optional[chess.Color]:
    """Color that played the move leading to `ply`, or None at the start position."""
    ply = clamp_ply(game, ply)
    if ply == 0:
        return None
    return not board_at(game, ply).turn


def uci_to_san(fen: str, code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    try:
        board = chess.Board(fen)
        mv = chess.Move.from_uci(code)
    except ValueError:
        return None
    if mv not in board.legal_moves:
        return None
    return board.san(mv)


def parse_color(value: Optional[str], default: chess.Color = chess.WHITE) -> chess.Color:
    """Accept 'w'/'b'/'white'/'black' (any case)."""
    if value is None:
        return default
    v = str(value).strip().lower()
    if v in {"w", "white"}:
        return chess.WHITE
    if v in {"b", "black"}:
        return chess.BLACK
    raise ValueError(f"unknown color {value!r}")


def color_code(color: Optional[chess.Color]) -> Optional[str]:
    if color is None:
        return None
    return "w" if color == chess.WHITE else "b"
