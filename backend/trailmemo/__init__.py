"""
TrailMemo Backend — Application Package
=========================================

What: REST backend for voice field notes recorded on the trail.
Who:  Imported by uvicorn (`trailmemo.main:app`), Alembic and pytest.

Architecture Note:
    The backend keeps a layered layout:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP parsing, clamping, status codes
    ├─────────────────────────────────────┤
    │   Services (stores + orchestration) │  ← Queries, ownership, upload compensation
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic contracts
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Long-lived resources (engine, identity verifier, object store) live on an
    AppContext built by the application factory; nothing in this package
    opens a connection at import time.
"""

__version__ = "1.0.0"
