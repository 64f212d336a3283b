from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class EventInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request_id: str = Field(min_length=1, max_length=255)
    user_id: str | None = Field(default=None, max_length=255)
    environment: str | None = Field(default=None, max_length=100)
    correlation_id: str | None = Field(default=None, max_length=255)
    request_timestamp: AwareDatetime
    response_timestamp: AwareDatetime
    service: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    status_code: int = Field(ge=100, le=599)
    attempt_number: int | None = Field(default=None, ge=1)
    original_request_id: str | None = Field(default=None, max_length=255)
    request_body: Any = None
    response_body: Any = None
    metadata: dict[str, Any] | None = None


class RestEventInput(EventInput):
    method: str = Field(min_length=1, max_length=16)
    request_size_bytes: int | None = Field(default=None, ge=0)
    response_size_bytes: int | None = Field(default=None, ge=0)


class LlmEventInput(EventInput):
    provider: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=255)
    endpoint: str = Field(min_length=1, max_length=255)
    prompt_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)
    cost_usd: float = Field(ge=0.0)
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, ge=0)
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    finish_reason: str | None = Field(default=None, max_length=64)
    is_streaming: bool | None = None
    time_to_first_token_ms: int | None = Field(default=None, ge=0)
    function_calls: list[Any] | None = None
    conversation_id: str | None = Field(default=None, max_length=255)
    warnings: list[Any] | None = None


class BatchRestEvent(RestEventInput):
    type: Literal["rest"]


class BatchLlmEvent(LlmEventInput):
    type: Literal["llm"]


BatchEvent = Annotated[BatchRestEvent | BatchLlmEvent, Field(discriminator="type")]


class BatchTrackRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    events: list[BatchEvent] = Field(min_length=1)


class TrackResponse(BaseModel):
    success: bool = True
    event_id: str


class BatchTrackResponse(BaseModel):
    success: bool = True
    events_processed: int
    event_ids: list[str]
