from schoolrecords.core.models.department import Department
from schoolrecords.core.models.class_model import SchoolClass
from schoolrecords.core.models.subject import Subject
from schoolrecords.core.models.student import Student
from schoolrecords.core.models.ca_type import CAType
from schoolrecords.core.models.result import Result, SubjectMark
from schoolrecords.core.models.grading_scale import GradingScale
from schoolrecords.core.models.transfer import Transfer

__all__ = [
    "CAType",
    "Department",
    "GradingScale",
    "Result",
    "SchoolClass",
    "Student",
    "Subject",
    "SubjectMark",
    "Transfer",
]
