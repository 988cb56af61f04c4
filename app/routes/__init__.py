"""Reflecta API - Routes Package."""

from app.routes import coaching

__all__ = [
    "coaching",
]
