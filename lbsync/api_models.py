from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError


class InvalidTrigger(ValueError):
    """Queue message body is not a usable SNS notification envelope."""


class TriggerEvent(BaseModel):
    """SNS notification envelope as delivered through SQS."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    Type: Literal["Notification"]
    MessageId: str = Field(..., min_length=1, validation_alias=AliasChoices("MessageId", "MessageID"))
    TopicArn: str = Field(..., min_length=1)
    Timestamp: datetime
    Subject: str | None = None
    Message: str

    @property
    def topic_name(self) -> str:
        # arn:aws:sns:<region>:<account>:<name>
        return self.TopicArn.rsplit(":", 1)[-1]


def parse_trigger(body: str | None, expected_topic: str | None = None) -> TriggerEvent:
    if not body:
        raise InvalidTrigger("empty message body")
    try:
        event = TriggerEvent.model_validate_json(body)
    except ValidationError as e:
        raise InvalidTrigger(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e
    # Accept either the bare topic name or the full ARN.
    if expected_topic and expected_topic not in {event.TopicArn, event.topic_name}:
        raise InvalidTrigger(f"unexpected topic {event.TopicArn!r} (want {expected_topic!r})")
    return event


class PassResultOut(BaseModel):
    trigger_id: str | None = None
    outcome: str = Field(..., description="invalid|discover_failed|publish_failed|reload_failed|reloaded")
    backends: int = 0
    detail: str = ""
    started_at: str
    duration_ms: float


class StatusOut(BaseModel):
    consumer_running: bool
    group: str
    destination: str
    passes_total: int
    outcomes: dict[str, int]
    last_pass: PassResultOut | None = None
