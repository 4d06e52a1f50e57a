"""Run execution (prompt fan-out, mock fallback, cost estimation).

Independent from the HTTP layer (`arena.api`) so the CLI and the API share the
same execution path.
"""
