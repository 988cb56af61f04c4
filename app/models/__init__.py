"""
Reflecta API - MongoDB Models Package.

Export all Beanie ODM models for MongoDB operations.
"""

from app.models.mongodb import (
    CoachingProfile,
    PushSettings,
    UserDocument,
    CoachingMessageDocument,
    JournalEntryDocument,
    InsightSection,
    UserInsightDocument,
)

__all__ = [
    "CoachingProfile",
    "PushSettings",
    "UserDocument",
    "CoachingMessageDocument",
    "JournalEntryDocument",
    "InsightSection",
    "UserInsightDocument",
]
