"""
Pytest suite for the Campus Live-State backend.

Test categories:
- Unit tests: mapper, tracker, aggregation, notifications and live views over a fake store
- Integration tests: SQL row store and feed cursors on in-memory SQLite
- API tests: FastAPI routes through httpx ASGITransport
"""
