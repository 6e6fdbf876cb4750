"""Repository layer: DB access helpers (SQLite / PostgreSQL).

Keep functions thin and focused, so services and routes avoid SQL strings.
"""
from __future__ import annotations
