"""
Flask app factory exposing the coach over HTTP.

Endpoints:
- POST /analyze  {pgn, moveIndex, userColor}  -> engine analysis + advice for one ply
- POST /preload  {pgn}                         -> engine analysis for every ply (cache warmup)
- GET  /health                                 -> liveness probe

InvalidGameError maps to 400, EngineSpawnError to 500.
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from .coach import CoachService
from .commentary import Commentator
from .config import Settings
from .coordinator import AnalysisCoordinator
from .errors import EngineSpawnError, InvalidGameError
from .preload import preload_game
from .replay import parse_color, parse_game

log = logging.getLogger("app")


def create_app(
    settings: Settings,
    coordinator: Optional[AnalysisCoordinator] = None,
    coach: Optional[CoachService] = None,
) -> Flask:
    app = Flask(__name__)
    coordinator = coordinator or AnalysisCoordinator(settings)
    if coach is None:
        commentator = Commentator(settings) if settings.llm_api_key else None
        if commentator is None:
            log.warning("No LLM API key configured; advice will be unavailable")
        coach = CoachService(coordinator, commentator)
    app.extensions["chess_coach"] = {"settings": settings, "coordinator": coordinator, "coach": coach}

    CORS(app, resources={r"/*": {"origins": "*"}})

    @app.errorhandler(InvalidGameError)
    def _invalid_game(e):
        return jsonify({"error": "invalid_game", "message": str(e)}), 400

    @app.errorhandler(EngineSpawnError)
    def _engine_unavailable(e):
        log.error("Engine unavailable: %s", e)
        return jsonify({"error": "engine_unavailable", "message": str(e)}), 500

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/analyze", methods=["POST"])
    def analyze():
        data = request.get_json(silent=True) or {}
        pgn = data.get("pgn")
        move_index = data.get("moveIndex")
        if not pgn or move_index is None:
            return jsonify({"error": "pgn and moveIndex required"}), 400
        if not isinstance(pgn, str):
            return jsonify({"error": "bad_request", "message": "pgn must be a string"}), 400
        try:
            ply = int(move_index)
            human = parse_color(data.get("userColor"))
        except (TypeError, ValueError) as e:
            return jsonify({"error": "bad_request", "message": str(e)}), 400
        game = parse_game(pgn)
        body = coach.review(game, ply, human)
        body["input"]["pgn"] = pgn
        return jsonify(body)

    @app.route("/preload", methods=["POST"])
    def preload():
        data = request.get_json(silent=True) or {}
        pgn = data.get("pgn")
        if not pgn:
            return jsonify({"error": "pgn required"}), 400
        if not isinstance(pgn, str):
            return jsonify({"error": "bad_request", "message": "pgn must be a string"}), 400
        try:
            human = parse_color(data.get("userColor"))
        except ValueError as e:
            return jsonify({"error": "bad_request", "message": str(e)}), 400
        game = parse_game(pgn)
        moves = preload_game(coordinator, game, human)
        return jsonify({
            "message": f"Preloaded {len(moves)} plies",
            "preloadedMoves": [m.to_json() for m in moves],
        })

    return app
