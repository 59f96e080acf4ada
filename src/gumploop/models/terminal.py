"""Terminal status model."""

from enum import Enum


class TerminalStatus(str, Enum):
    """Status inferred from an agent's visible terminal output."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    WAITING_USER_ANSWER = "waiting_user_answer"
    ERROR = "error"
