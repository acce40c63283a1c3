import argparse
import json
import logging
import sys
from dataclasses import replace

from chess_coach.config import load_settings
from chess_coach.coordinator import AnalysisCoordinator
from chess_coach.errors import CoachError
from chess_coach.preload import preload_game
from chess_coach.replay import parse_color, parse_game


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Analyze every ply of a PGN game with the configured engine and print JSON.")
    ap.add_argument("pgn", help="Path to a PGN file ('-' reads stdin)")
    ap.add_argument("--config", default=None, help="Optional settings.yml path")
    ap.add_argument("--user-color", choices=["w", "b"], default="w", help="Which side you played")
    ap.add_argument("--movetime", type=int, default=None, help="Engine movetime in ms (overrides config)")
    ap.add_argument("--out", default=None, help="Optional path to write the JSON result")
    ap.add_argument("--log-level", default="INFO", help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("analyze_game")

    if args.pgn == "-":
        text = sys.stdin.read()
    else:
        with open(args.pgn, "r", encoding="utf-8") as f:
            text = f.read()

    settings = load_settings(args.config)
    if args.movetime is not None:
        settings = replace(settings, movetime_ms=args.movetime)

    coordinator = AnalysisCoordinator(settings)
    try:
        game = parse_game(text)
        log.info("Loaded game: %d plies, start=%s", len(game), game.start_fen)
        moves = preload_game(coordinator, game, parse_color(args.user_color))
    except CoachError as e:
        log.error("%s: %s", type(e).__name__, e)
        sys.exit(1)
    finally:
        coordinator.close()

    payload = json.dumps([m.to_json() for m in moves], indent=2)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(payload)
        log.info("Wrote %d plies to %s", len(moves), args.out)
    else:
        print(payload)
