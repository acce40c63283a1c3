"""
AnalysisCoordinator: ply request → cached or freshly computed engine analysis.

- Canonical key = (FEN, mover color, human color); move counters are not part of it.
- Cache hit: return the stored result, no engine session.
- Cache miss: take a slot from a BoundedSemaphore (max_engine_sessions), run one engine
  session (spawn-per-call, or a pooled one when settings.engine_pool is set), store, release.
- Concurrent misses on the same key share one in-flight computation.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import chess

from .cache import AnalysisCache
from .config import Settings
from .engine_session import EnginePool, EngineSession, SessionFactory
from .replay import Game, clamp_ply, mover_at, position_at, uci_to_san
from .uci import AnalysisResult

log = logging.getLogger("coordinator")

CacheKey = Tuple[str, Optional[bool], bool]


@dataclass(frozen=True)
class SideContext:
    mover: Optional[chess.Color]  # side that played the move into this ply (None at the start)
    human_color: chess.Color

    @classmethod
    def for_ply(cls, game: Game, ply: int, human_color: chess.Color = chess.WHITE) -> "SideContext":
        return cls(mover=mover_at(game, ply), human_color=human_color)

    @property
    def is_human_move(self) -> bool:
        return self.mover is not None and self.mover == self.human_color


@dataclass(frozen=True)
class PlyAnalysis:
    ply: int
    fen: str
    result: AnalysisResult
    best_move_san: Optional[str]
    key: CacheKey
    cached: bool = False

    @property
    def evaluation_json(self):
        ev = self.result.evaluation
        return ev.to_json() if ev is not None else None

    def to_json(self) -> dict:
        return {
            "bestMove": self.best_move_san,
            "evaluation": self.evaluation_json,
            "searchDepth": self.result.depth,
        }


class AnalysisCoordinator:
    def __init__(
        self,
        settings: Settings,
        session_factory: Optional[SessionFactory] = None,
        cache: Optional[AnalysisCache] = None,
    ):
        self.settings = settings
        self._session_factory = session_factory or (lambda: EngineSession.from_settings(settings))
        self.cache = cache or AnalysisCache(settings.cache_max_entries, settings.cache_ttl_s)
        self._slots = threading.BoundedSemaphore(settings.max_engine_sessions)
        self._pool = EnginePool(self._session_factory, settings.max_engine_sessions) if settings.engine_pool else None
        self._inflight: Dict[CacheKey, Future] = {}
        self._lock = threading.Lock()

    @staticmethod
    def cache_key(fen: str, side: SideContext) -> CacheKey:
        return (fen, side.mover, side.human_color)

    def analyze(self, game: Game, ply: int, side: Optional[SideContext] = None) -> PlyAnalysis:
        ply = clamp_ply(game, ply)
        side = side or SideContext.for_ply(game, ply)
        fen = position_at(game, ply)
        key = self.cache_key(fen, side)

        entry = self.cache.get(key)
        if entry is not None:
            return self._wrap(ply, fen, key, entry.result, cached=True)

        with self._lock:
            entry = self.cache.get(key)
            fut = self._inflight.get(key) if entry is None else None
            owner = entry is None and fut is None
            if owner:
                fut = Future()
                self._inflight[key] = fut
        if entry is not None:
            return self._wrap(ply, fen, key, entry.result, cached=True)
        if not owner:
            log.debug("Joining in-flight analysis for ply %d", ply)
            return self._wrap(ply, fen, key, fut.result(), cached=True)

        try:
            result = self._compute(fen)
            self.cache.put(key, result)
            fut.set_result(result)
        except Exception as e:
            fut.set_exception(e)
            raise
        finally:
            if not fut.done():
                fut.set_exception(RuntimeError(f"analysis of {fen} was interrupted"))
            with self._lock:
                self._inflight.pop(key, None)
        return self._wrap(ply, fen, key, result, cached=False)

    @staticmethod
    def commentary_key(analysis: PlyAnalysis, before_fen: str, actual_move: str) -> tuple:
        # engine key + (position before the move, SAN of the move played)
        return analysis.key + (before_fen, actual_move)

    def commentary_for(self, analysis: PlyAnalysis, before_fen: str, actual_move: str) -> Optional[str]:
        entry = self.cache.get(self.commentary_key(analysis, before_fen, actual_move))
        return entry.commentary if entry is not None else None

    def attach_commentary(self, analysis: PlyAnalysis, before_fen: str, actual_move: str, commentary: str) -> None:
        self.cache.put(self.commentary_key(analysis, before_fen, actual_move), analysis.result, commentary)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()

    def _compute(self, fen: str) -> AnalysisResult:
        with self._slots:
            log.info("Analyzing %s", fen)
            if self._pool is not None:
                return self._pool.analyze(fen)
            return self._session_factory().analyze(fen)

    @staticmethod
    def _wrap(ply: int, fen: str, key: CacheKey, result: AnalysisResult, cached: bool) -> PlyAnalysis:
        return PlyAnalysis(
            ply=ply,
            fen=fen,
            result=result,
            best_move_san=uci_to_san(fen, result.best_move),
            key=key,
            cached=cached,
        )
