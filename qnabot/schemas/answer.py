"""Schemas for answers returned by the generateAnswer endpoint."""

from pydantic import BaseModel, Field, model_validator

from qnabot.core.errors import QnAServiceError, ServiceError


class Answer(BaseModel):
    """One candidate answer, in the order the service ranked it."""

    answer_text: str = Field(..., description="Answer text with HTML entities decoded.")
    questions: tuple[str, ...] = Field(..., description="Knowledge base questions this answer is attached to.")
    score: float = Field(..., description="Confidence score (observed range 0-100).")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [{"answer_text": "A & B", "questions": ["What is A?"], "score": 42.5}]
        },
    }


class AskResult(BaseModel):
    """Outcome of one ask() call: exactly one of answers / error is set."""

    answers: list[Answer] | None = None
    error: ServiceError | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _exactly_one(self) -> "AskResult":
        if (self.answers is None) == (self.error is None):
            raise ValueError("exactly one of answers or error must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> list[Answer]:
        """Return the answers or raise QnAServiceError."""
        if self.error is not None:
            raise QnAServiceError(self.error)
        return list(self.answers or [])

    def best(self) -> Answer | None:
        """Top-ranked answer, or None on error / empty list."""
        if not self.answers:
            return None
        return self.answers[0]
