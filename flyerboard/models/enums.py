"""
Python enums for persisted state.
Values are stored as plain strings so SQLite and PostgreSQL share one schema.
"""

from enum import Enum


class SubmissionStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PARSED = "parsed"
    MODERATING = "moderating"
    GEOCODING = "geocoding"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.DONE, SubmissionStatus.ERROR)

    def can_transition_to(self, target: "SubmissionStatus") -> bool:
        return target in _SUBMISSION_TRANSITIONS[self]


# Terminal states only leave via an explicit reprocess reset
_SUBMISSION_TRANSITIONS = {
    SubmissionStatus.UPLOADED: {SubmissionStatus.PROCESSING, SubmissionStatus.ERROR},
    SubmissionStatus.PROCESSING: {SubmissionStatus.PARSED, SubmissionStatus.ERROR},
    SubmissionStatus.PARSED: {SubmissionStatus.MODERATING, SubmissionStatus.ERROR},
    SubmissionStatus.MODERATING: {SubmissionStatus.GEOCODING, SubmissionStatus.ERROR},
    SubmissionStatus.GEOCODING: {SubmissionStatus.DONE, SubmissionStatus.ERROR},
    SubmissionStatus.DONE: {SubmissionStatus.UPLOADED},
    SubmissionStatus.ERROR: {SubmissionStatus.UPLOADED},
}


# Client-facing progress step per lifecycle status
SUBMISSION_STEPS = {
    SubmissionStatus.UPLOADED: "uploaded",
    SubmissionStatus.PROCESSING: "extracting",
    SubmissionStatus.PARSED: "moderating",
    SubmissionStatus.MODERATING: "moderating",
    SubmissionStatus.GEOCODING: "geocoding",
    SubmissionStatus.DONE: "done",
    SubmissionStatus.ERROR: "error",
}


class Decision(str, Enum):
    PUBLISHED = "published"
    BLOCKED = "blocked"
    NEEDS_REVIEW = "needs_review"


class DecisionSource(str, Enum):
    """Who took a decision; doubles as Event.published_via."""
    AUTO = "auto"
    MANUAL = "manual"


class ModerationState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    BLOCKED = "blocked"


class QualitySource(str, Enum):
    CLASSIFIER = "classifier"
    HEURISTIC = "heuristic"


class UnpublishReason(str, Enum):
    SPAM = "spam"
    DUPLICATE = "duplicate"
    BAD_LOCATION = "bad_location"
    INAPPROPRIATE = "inappropriate"


class AuditAction(str, Enum):
    MANUAL_DECISION = "manual_decision"
    UNPUBLISH = "unpublish"
    MERGE = "merge"
