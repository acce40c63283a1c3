"""
Configuration and environment loading for Chess Coach.

- Loads settings.yml (YAML) from the repo root (or an explicit path) if present; falls back to environment variables.
- load_settings() builds one frozen Settings object at startup; callers pass it explicitly to the
  engine session factory, the coordinator, the commentary client and the app factory.
"""
from __future__ import annotations

import os
import shlex
import shutil
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import yaml
from dotenv import load_dotenv


def _repo_root() -> str:
    # this file: src/chess_coach/config.py → repo root is two levels up
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _as_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _as_args(val: Any) -> tuple[str, ...]:
    if isinstance(val, (list, tuple)):
        return tuple(str(v) for v in val)
    return tuple(shlex.split(str(val)))


def _optional_float(val: Any) -> Optional[float]:
    if val is None or str(val).strip() == "":
        return None
    return float(val)


@dataclass(frozen=True)
class Settings:
    # Engine process
    engine_path: str = "stockfish"
    engine_args: tuple[str, ...] = ()
    engine_threads: int = 4
    engine_hash_mb: int = 512
    movetime_ms: int = 2000
    deadline_grace_ms: int = 100
    handshake_timeout_s: float = 5.0
    kill_grace_s: float = 1.0

    # Coordination / cache
    max_engine_sessions: int = 2
    engine_pool: bool = False
    cache_max_entries: int = 1024
    cache_ttl_s: Optional[float] = None

    # Commentary (OpenAI-compatible wire format; OpenRouter by default)
    llm_api_key: str = field(default="", repr=False)
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "openai/gpt-4.1-nano"
    commentary_max_tokens: int = 120
    commentary_timeout_s: float = 20.0
    commentary_retries: int = 1

    # HTTP
    port: int = 8060

    def engine_command(self) -> list[str]:
        """Return argv for the engine process.

        The configured path is resolved through PATH when possible; an unresolved
        path is returned as-is so that the spawn itself reports the failure.
        """
        resolved = shutil.which(self.engine_path) or self.engine_path
        return [resolved, *self.engine_args]


def load_settings(path: str | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings with precedence: YAML file → environment → defaults."""
    if env is None:
        load_dotenv()
        env = os.environ
    cfg = _load_yaml(path or os.path.join(_repo_root(), "settings.yml"))

    def _get(name: str, default: Any, cast: Callable[[Any], Any] | None = None, *aliases: str) -> Any:
        for key in (name, *aliases):
            if key in cfg:
                val = cfg[key]
                return cast(val) if cast else val
        for key in (name, *aliases):
            val = env.get(key)
            if val is not None:
                return cast(val) if cast else val
        return default

    d = Settings()
    return Settings(
        engine_path=_get("CHESS_COACH_ENGINE_PATH", d.engine_path, str, "STOCKFISH_PATH"),
        engine_args=_get("CHESS_COACH_ENGINE_ARGS", d.engine_args, _as_args),
        engine_threads=_get("CHESS_COACH_ENGINE_THREADS", d.engine_threads, int),
        engine_hash_mb=_get("CHESS_COACH_ENGINE_HASH_MB", d.engine_hash_mb, int),
        movetime_ms=_get("CHESS_COACH_MOVETIME_MS", d.movetime_ms, int),
        deadline_grace_ms=_get("CHESS_COACH_DEADLINE_GRACE_MS", d.deadline_grace_ms, int),
        handshake_timeout_s=_get("CHESS_COACH_HANDSHAKE_TIMEOUT_S", d.handshake_timeout_s, float),
        kill_grace_s=_get("CHESS_COACH_KILL_GRACE_S", d.kill_grace_s, float),
        max_engine_sessions=max(1, _get("CHESS_COACH_MAX_ENGINE_SESSIONS", d.max_engine_sessions, int)),
        engine_pool=_get("CHESS_COACH_ENGINE_POOL", d.engine_pool, _as_bool),
        cache_max_entries=max(1, _get("CHESS_COACH_CACHE_MAX_ENTRIES", d.cache_max_entries, int)),
        cache_ttl_s=_get("CHESS_COACH_CACHE_TTL_S", d.cache_ttl_s, _optional_float),
        llm_api_key=_get("OPENROUTER_API_KEY", d.llm_api_key, str, "CHESS_COACH_LLM_API_KEY"),
        llm_base_url=_get("CHESS_COACH_LLM_BASE_URL", d.llm_base_url, str),
        llm_model=_get("CHESS_COACH_LLM_MODEL", d.llm_model, str),
        commentary_max_tokens=_get("CHESS_COACH_COMMENTARY_MAX_TOKENS", d.commentary_max_tokens, int),
        commentary_timeout_s=_get("CHESS_COACH_COMMENTARY_TIMEOUT_S", d.commentary_timeout_s, float),
        commentary_retries=max(0, _get("CHESS_COACH_COMMENTARY_RETRIES", d.commentary_retries, int)),
        port=_get("PORT", d.port, int),
    )
