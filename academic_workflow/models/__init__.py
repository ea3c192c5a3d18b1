from .user import User, UserRole
from .classroom import Classroom, ClassroomMembership, ClassroomStatus
from .assignment import Assignment, AssignmentStatus
from .submission import Submission, SubmissionStatus
from .academic_record import AcademicRecord, SubjectMark
from .notification import Notification, NotificationCategory
from .activity import Activity, ActivityCategory, ActivityStatus

__all__ = [
    "User",
    "UserRole",
    "Classroom",
    "ClassroomMembership",
    "ClassroomStatus",
    "Assignment",
    "AssignmentStatus",
    "Submission",
    "SubmissionStatus",
    "AcademicRecord",
    "SubjectMark",
    "Notification",
    "NotificationCategory",
    "Activity",
    "ActivityCategory",
    "ActivityStatus"
]
