"""
Tracklane Backend: Application Package Initializer
====================================================

What: Marks the `tracklane` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend keeps the usual layered split:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Issues, teams, key sequences
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Issue numbering lives entirely in the services layer
    (services/sequence_service.py) and talks to the database only through
    the session handed to it by the caller.
"""

__version__ = "1.0.0"
