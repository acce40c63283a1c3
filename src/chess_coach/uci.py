"""
UCI wire vocabulary and search-output parsing.

- Command builders for the handful of commands a session sends.
- Evaluation: tagged engine score (pawns or mate-in-N).
- AnalysisResult: best move code + evaluation + depth reached for one search.
- parse_search_output(): turns the raw lines of one search into an AnalysisResult.
  Only the score from the deepest "info depth ..." line counts; the last bestmove wins.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .errors import ProtocolParseError

log = logging.getLogger("uci")

# Commands
UCI = "uci"
ISREADY = "isready"
UCINEWGAME = "ucinewgame"
QUIT = "quit"

# Tokens
UCIOK = "uciok"
READYOK = "readyok"
BESTMOVE = "bestmove"

MOVE_CODE_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")
_DEPTH_RE = re.compile(r"\bdepth\s+(\S+)")
_SCORE_RE = re.compile(r"\bscore\s+(\S+)\s+(\S+)")


def setoption(name: str, value) -> str:
    return f"setoption name {name} value {value}"


def position_fen(fen: str) -> str:
    return f"position fen {fen}"


def go_movetime(ms: int) -> str:
    return f"go movetime {int(ms)}"


@dataclass(frozen=True)
class Evaluation:
    """Engine score from the side-to-move's point of view.

    kind is "cp" (value in pawns, float) or "mate" (value is the signed move count).
    """

    kind: str
    value: Union[float, int]

    @classmethod
    def from_centipawns(cls, cp: int) -> "Evaluation":
        return cls("cp", cp / 100)

    @classmethod
    def mate_in(cls, n: int) -> "Evaluation":
        return cls("mate", int(n))

    @property
    def is_mate(self) -> bool:
        return self.kind == "mate"

    def to_json(self) -> Union[float, str]:
        if self.is_mate:
            return f"#{self.value}"
        return self.value


@dataclass(frozen=True)
class AnalysisResult:
    best_move: Optional[str] = None  # UCI move code
    evaluation: Optional[Evaluation] = None
    depth: int = 0

    @classmethod
    def empty(cls) -> "AnalysisResult":
        return cls()


def parse_bestmove(line: str) -> Optional[str]:
    """Return the move code of a bestmove line, or None for "(none)"/"0000"/junk."""
    parts = line.split()
    if len(parts) < 2 or parts[0] != BESTMOVE:
        return None
    code = parts[1].lower()
    return code if MOVE_CODE_RE.match(code) else None


def parse_info(line: str) -> tuple[Optional[int], Optional[Evaluation], bool]:
    """Parse one info line into (depth, evaluation, has_score).

    A "score mate 0" line has a score but no usable evaluation. Raises
    ProtocolParseError when a depth or score field is present but malformed.
    """
    depth = None
    m = _DEPTH_RE.search(line)
    if m:
        try:
            depth = int(m.group(1))
        except ValueError:
            raise ProtocolParseError(line, "bad depth") from None
    m = _SCORE_RE.search(line)
    if not m:
        return depth, None, False
    kind, raw = m.group(1), m.group(2)
    try:
        value = int(raw)
    except ValueError:
        raise ProtocolParseError(line, "bad score value") from None
    if kind == "cp":
        return depth, Evaluation.from_centipawns(value), True
    if kind == "mate":
        return depth, (Evaluation.mate_in(value) if value != 0 else None), True
    raise ProtocolParseError(line, f"unknown score kind {kind!r}")


def parse_search_output(lines: Iterable[str], completed: bool = True) -> AnalysisResult:
    """Reduce the raw output of one search to an AnalysisResult.

    When completed is False (the search was cut off) the best move is always absent.
    """
    best_move: Optional[str] = None
    evaluation: Optional[Evaluation] = None
    max_depth = -1
    score_depth = -1
    for raw in lines:
        line = raw.strip()
        if line.startswith(BESTMOVE):
            best_move = parse_bestmove(line)
            continue
        if not line.startswith("info"):
            continue
        try:
            depth, ev, has_score = parse_info(line)
        except ProtocolParseError as e:
            log.warning("Skipping unreadable engine line: %s", e)
            continue
        if depth is None:
            continue
        max_depth = max(max_depth, depth)
        if has_score and depth > score_depth:
            score_depth = depth
            evaluation = ev
    return AnalysisResult(
        best_move=best_move if completed else None,
        evaluation=evaluation,
        depth=max(max_depth, 0),
    )
