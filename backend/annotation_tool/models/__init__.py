from .annotation import Annotation
from .annotations import Annotations
from .track import Track, TrackChanges, TrackContext, TrackPhase, ValidationResult
from .user import User

__all__ = [
    "Annotation",
    "Annotations",
    "Track",
    "TrackChanges",
    "TrackContext",
    "TrackPhase",
    "User",
    "ValidationResult",
]
