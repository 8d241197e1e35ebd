from models.base import Base
from models.user import User
from models.access_token import AccessToken
from models.job import Job, JobStatus, JobType
from models.rate_limit import RateLimitWindow
from models.learning_path import LearningPath
from models.lesson import Lesson
from models.event import Event

__all__ = [
    "Base",
    "User",
    "AccessToken",
    "Job",
    "JobStatus",
    "JobType",
    "RateLimitWindow",
    "LearningPath",
    "Lesson",
    "Event",
]
