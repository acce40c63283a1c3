"""
Chess Coach package.

Components:
- replay: PGN parsing and per-ply position replay (python-chess)
- uci/engine_session: UCI protocol parsing and the engine process state machine (+ optional pool)
- cache/coordinator: canonical-key analysis cache and the bounded engine-session limiter
- preload: sequential whole-game analysis
- commentary/coach: LLM advice on top of engine results
- debounce/client: HTTP client that coalesces bursts of analysis requests
- app: Flask endpoints
"""
