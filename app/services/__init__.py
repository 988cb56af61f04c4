"""Reflecta API - Services Package."""

from .coaching_store import CoachingStore, get_coaching_store
from .gemini import GeminiService, get_gemini_service
from .due_time import next_due, is_in_time_window, next_window_start

__all__ = [
    "CoachingStore",
    "get_coaching_store",
    "GeminiService",
    "get_gemini_service",
    "next_due",
    "is_in_time_window",
    "next_window_start",
]
