"""HTTP API layer (FastAPI).

Endpoints used by the comparison web UI:
- submit a prompt to several models (`POST /api/run`)
- vote for the best answer of a run (`POST /api/vote`)
- browse and delete stored runs, read the leaderboard

The layer stays thin: fan-out lives in `arena.runtime`, persistence in `arena.storage`.
"""
