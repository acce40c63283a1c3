"""
HTTP client for the coach API.

analyze() goes through a Debouncer so rapid navigation produces one request per quiet
period; every call still gets a Future (superseded ones resolve to SUPERSEDED).
"""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import List, Optional

import requests

from .debounce import Debouncer

log = logging.getLogger("client")


class CoachClient:
    def __init__(self, base_url: str = "http://localhost:8060", delay_s: float = 0.3, timeout_s: float = 60.0, preload_timeout_s: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.preload_timeout_s = preload_timeout_s
        self._http = session or requests.Session()
        self._debouncer = Debouncer(self.fetch_analysis, delay_s)

    def analyze(self, pgn: str, move_index: int, user_color: str = "w") -> Future:
        return self._debouncer.schedule(pgn, move_index, user_color)

    def cancel(self) -> None:
        self._debouncer.cancel()

    def fetch_analysis(self, pgn: str, move_index: int, user_color: str = "w") -> dict:
        return self._post("/analyze", {"pgn": pgn, "moveIndex": move_index, "userColor": user_color}, self.timeout_s)

    def preload(self, pgn: str, user_color: str = "w") -> List[dict]:
        data = self._post("/preload", {"pgn": pgn, "userColor": user_color}, self.preload_timeout_s)
        return data.get("preloadedMoves", [])

    def _post(self, path: str, payload: dict, timeout: Optional[float]) -> dict:
        log.debug("POST %s%s", self.base_url, path)
        resp = self._http.post(self.base_url + path, json=payload, timeout=timeout)
        resp.raise_for_status()
        return resp.json()
