# db/enums.py
import enum

class UserRole(enum.StrEnum):
    ADMIN = "admin"
    CONTESTANT = "contestant"

class Difficulty(enum.StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

class ContestStatus(enum.StrEnum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return _CONTEST_STATUS_ORDER[self]

_CONTEST_STATUS_ORDER = {
    ContestStatus.UPCOMING: 0,
    ContestStatus.ACTIVE: 1,
    ContestStatus.COMPLETED: 2,
}

class SubmissionStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    RUNTIME_ERROR = "runtime_error"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING

class ProgrammingLanguage(enum.StrEnum):
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    JAVA = "java"
    CPP = "cpp"
    C = "c"

class ChangeStream(enum.StrEnum):
    CONTESTS = "contests"
    SUBMISSIONS = "submissions"
    PARTICIPANTS = "participants"
