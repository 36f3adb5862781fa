"""
Response interpretation for the generateAnswer endpoint.

Responsibility: Parse raw response bytes once into a tagged payload
(answers / error / malformed), then map it to an AskResult. No untyped dict
leaves parse_payload; every field is checked for presence and type.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from qnabot.core.errors import INVALID_RESULTS_MESSAGE, ErrorKind, ServiceError
from qnabot.schemas.answer import Answer, AskResult
from qnabot.services.html_text import decode_html_entities

logger = logging.getLogger(__name__)


class MalformedPayloadError(Exception):
    """Raised when the body is not JSON or does not match a known shape."""


@dataclass(frozen=True)
class RawAnswer:
    answer: str
    questions: tuple[str, ...]
    score: float


@dataclass(frozen=True)
class AnswersPayload:
    """Top-level {"answers": [...]}."""

    answers: tuple[RawAnswer, ...]


@dataclass(frozen=True)
class ErrorPayload:
    """Top-level {"error": {"code": ..., "message": [...]}}."""

    code: str
    messages: tuple[str, ...]


@dataclass(frozen=True)
class MalformedPayload:
    """Anything else; reason is only for logs."""

    reason: str


Payload = Union[AnswersPayload, ErrorPayload, MalformedPayload]


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a score
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _string_list(value: Any, field: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedPayloadError(f"{field} must be a list of strings")
    return tuple(value)


def _parse_answer(item: Any, index: int) -> RawAnswer:
    if not isinstance(item, dict):
        raise MalformedPayloadError(f"answers[{index}] is not an object")
    for field in ("answer", "questions", "score"):
        if field not in item:
            raise MalformedPayloadError(f"answers[{index}] missing {field!r}")
    if not isinstance(item["answer"], str):
        raise MalformedPayloadError(f"answers[{index}].answer must be a string")
    if not _is_number(item["score"]):
        raise MalformedPayloadError(f"answers[{index}].score must be a number")
    try:
        score = float(item["score"])
    except OverflowError:
        raise MalformedPayloadError(f"answers[{index}].score is out of range") from None
    return RawAnswer(
        answer=item["answer"],
        questions=_string_list(item["questions"], f"answers[{index}].questions"),
        score=score,
    )


def _parse_error(obj: Any) -> ErrorPayload:
    if not isinstance(obj, dict):
        raise MalformedPayloadError("error must be an object")
    code = obj.get("code")
    if not isinstance(code, str):
        raise MalformedPayloadError("error.code must be a string")
    message = obj.get("message")
    # newer deployments send a single string instead of a list
    if isinstance(message, str):
        messages: tuple[str, ...] = (message,)
    else:
        messages = _string_list(message, "error.message")
    return ErrorPayload(code=code, messages=messages)


def parse_payload(body: bytes) -> Payload:
    """
    Classify a response body. The error key wins when both error and answers
    are present; a single bad answer entry makes the whole payload malformed.
    """
    try:
        data = json.loads(body) if body else None
    except (ValueError, UnicodeDecodeError, RecursionError) as e:
        return MalformedPayload(reason=f"body is not JSON: {e}")
    if not isinstance(data, dict):
        return MalformedPayload(reason=f"top level is {type(data).__name__}, not an object")
    try:
        if "error" in data:
            return _parse_error(data["error"])
        if "answers" in data:
            items = data["answers"]
            if not isinstance(items, list):
                raise MalformedPayloadError("answers must be a list")
            return AnswersPayload(answers=tuple(_parse_answer(item, i) for i, item in enumerate(items)))
    except MalformedPayloadError as e:
        return MalformedPayload(reason=str(e))
    return MalformedPayload(reason="neither 'answers' nor 'error' at top level")


def interpret_response(
    status_code: int,
    body: bytes,
    decode: Callable[[str], str] = decode_html_entities,
) -> AskResult:
    """
    Map an HTTP status and body to an AskResult.

    decode is applied to every answer text (entity decoding by default).
    """
    payload = parse_payload(body)
    if isinstance(payload, ErrorPayload):
        description = payload.messages[0] if payload.messages else "error"
        logger.warning(
            "[response_interpreter:interpret_response] service error status=%d code=%s",
            status_code, payload.code,
        )
        return AskResult(
            error=ServiceError(
                title=payload.code,
                description=description,
                status_code=status_code,
                kind=ErrorKind.SERVICE_REPORTED,
            )
        )
    if isinstance(payload, AnswersPayload):
        answers = [
            Answer(answer_text=decode(raw.answer), questions=raw.questions, score=raw.score)
            for raw in payload.answers
        ]
        logger.info(
            "[response_interpreter:interpret_response] OUT status=%d answers=%d top_score=%s",
            status_code, len(answers), answers[0].score if answers else None,
        )
        return AskResult(answers=answers)
    logger.warning(
        "[response_interpreter:interpret_response] malformed status=%d reason=%s",
        status_code, payload.reason,
    )
    return AskResult(
        error=ServiceError.client_side(ErrorKind.MALFORMED_RESPONSE, INVALID_RESULTS_MESSAGE, status_code)
    )
