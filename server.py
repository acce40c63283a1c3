"""
Run the Chess Coach HTTP API (Flask).

Endpoints (see chess_coach.app):
- POST /analyze -> engine analysis + advice for one ply
- POST /preload -> engine analysis for every ply of a game
- GET  /health

Settings come from settings.yml / environment (see chess_coach.config); --port overrides PORT.
"""
from __future__ import annotations

import argparse
import logging

from chess_coach.app import create_app
from chess_coach.config import load_settings


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None, help="Optional settings.yml path (defaults to repo root settings.yml)")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=None, help="Listen port (overrides PORT)")
    ap.add_argument("--log-level", default="INFO", help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings(args.config)
    app = create_app(settings)
    coordinator = app.extensions["chess_coach"]["coordinator"]
    port = args.port or settings.port
    logging.getLogger("server").info("Listening on %s:%d (engine=%s, sessions=%d)", args.host, port, settings.engine_path, settings.max_engine_sessions)
    try:
        app.run(host=args.host, port=port, threaded=True)
    finally:
        coordinator.close()


if __name__ == "__main__":
    main()
