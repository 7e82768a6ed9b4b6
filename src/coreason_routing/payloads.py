# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from coreason_routing.exceptions import PayloadValidationError

Message = Dict[str, str]


class _BasePayload(BaseModel):
    max_tokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    system_prompt: Optional[str] = None

    def _with_system(self, user_content: str) -> List[Message]:
        messages: List[Message] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": user_content})
        return messages

    def completion_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return kwargs


class ContentGenerationRequest(_BasePayload):
    kind: Literal["content_generation"] = "content_generation"
    topic: str = Field(..., min_length=1)
    audience: Optional[str] = None
    difficulty: Optional[str] = None

    def to_messages(self) -> List[Message]:
        prompt = f"Write learning content about: {self.topic}."
        if self.audience:
            prompt += f" Audience: {self.audience}."
        if self.difficulty:
            prompt += f" Difficulty: {self.difficulty}."
        return self._with_system(prompt)


class QuizGenerationRequest(_BasePayload):
    kind: Literal["quiz_generation"] = "quiz_generation"
    topic: str = Field(..., min_length=1)
    question_count: int = Field(5, ge=1, le=50)
    difficulty: Optional[str] = None

    def to_messages(self) -> List[Message]:
        prompt = f"Generate {self.question_count} quiz questions about: {self.topic}."
        if self.difficulty:
            prompt += f" Difficulty: {self.difficulty}."
        prompt += " Respond with JSON."
        return self._with_system(prompt)


class FeedbackRequest(_BasePayload):
    kind: Literal["personalized_feedback"] = "personalized_feedback"
    submission: str = Field(..., min_length=1)
    rubric: Optional[str] = None

    def to_messages(self) -> List[Message]:
        prompt = f"Give constructive feedback on this submission:\n{self.submission}"
        if self.rubric:
            prompt += f"\n\nRubric:\n{self.rubric}"
        return self._with_system(prompt)


class ExplanationRequest(_BasePayload):
    kind: Literal["content_explanation"] = "content_explanation"
    concept: str = Field(..., min_length=1)
    learner_level: Optional[str] = None

    def to_messages(self) -> List[Message]:
        prompt = f"Explain the concept: {self.concept}."
        if self.learner_level:
            prompt += f" The learner is at {self.learner_level} level."
        return self._with_system(prompt)


class CompletionRequest(_BasePayload):
    """Free-form chat request for use cases without a dedicated shape."""

    kind: Literal["completion"] = "completion"
    messages: List[Message] = Field(..., min_length=1)

    def to_messages(self) -> List[Message]:
        if self.system_prompt:
            return [{"role": "system", "content": self.system_prompt}, *self.messages]
        return list(self.messages)


RequestPayload = Annotated[
    Union[ContentGenerationRequest, QuizGenerationRequest, FeedbackRequest, ExplanationRequest, CompletionRequest],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter[Any] = TypeAdapter(RequestPayload)


def parse_payload(payload: Any) -> RequestPayload:
    """
    Validates a dict (or an already-built payload model) into the request union.

    Raises:
        PayloadValidationError: the payload matches no known request shape.
    """
    if isinstance(payload, _BasePayload):
        return payload  # type: ignore[return-value]
    try:
        return _payload_adapter.validate_python(payload)  # type: ignore[no-any-return]
    except ValidationError as e:
        raise PayloadValidationError(f"Invalid request payload: {e}") from e
