"""Domain layer (pure logic).

- Keep game rules, payout tables and round arithmetic here.
- Avoid I/O: no Redis, no HTTP/FastAPI, no aiohttp.
- Prefer deterministic functions (time is passed in as an argument).
"""
