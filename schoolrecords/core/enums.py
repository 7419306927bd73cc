from enum import Enum


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Term(str, Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"


class ImportPhase(str, Enum):
    VALIDATING = "validating"
    CHECKING_DUPLICATES = "checking-duplicates"
    MATCHING_STUDENTS = "matching-students"
    MATCHING_SUBJECTS = "matching-subjects"
    IMPORTING = "importing"
    COMPLETE = "complete"


class RowStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


class ImportStatus(str, Enum):
    """Terminal state of a whole import, drives the caller's notification tone."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class PromotionStatus(str, Enum):
    PROMOTED = "promoted"
    GRADUATED = "graduated"
    ERROR = "error"
    SKIPPED = "skipped"


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
