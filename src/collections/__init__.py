"""Concrete collections built on the generic collection manager.

- **media**: Uploaded file metadata
- **feedback**: User feedback with optional attached media
"""

from src.collections.feedback import (
    Feedback,
    FeedbackRequest,
    FeedbackResponse,
    feedback_collection,
)
from src.collections.media import (
    Media,
    MediaRequest,
    MediaResponse,
    media_collection,
)

__all__ = [
    "Feedback",
    "FeedbackRequest",
    "FeedbackResponse",
    "Media",
    "MediaRequest",
    "MediaResponse",
    "feedback_collection",
    "media_collection",
]
