"""
Domain records, enumerations and validated request shapes.
"""

from .models import (  # noqa: F401
    Category,
    Contact,
    DataConflict,
    DuplicatePair,
    Interaction,
    MergeRecord,
    QueueItem,
    ScoreSnapshot,
    StatusChange,
    Template,
)
