import json
from datetime import datetime, timezone

import pytest

from lbsync.api_models import InvalidTrigger, parse_trigger

from conftest import sns_body


def test_parse_sns_envelope():
    ev = parse_trigger(sns_body(message_id="abc"))
    assert ev.Type == "Notification"
    assert ev.MessageId == "abc"
    assert ev.topic_name == "asg-events"
    assert ev.Timestamp == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_message_id_spelling_from_go_clients_is_accepted():
    body = json.loads(sns_body())
    body["MessageID"] = body.pop("MessageId")
    assert parse_trigger(json.dumps(body)).MessageId == "m-1"


def test_subject_is_optional():
    assert parse_trigger(sns_body(Subject=None)).Subject is None


@pytest.mark.parametrize(
    "body",
    [
        None,
        "",
        "not json",
        "[]",
        sns_body(Type=None),
        sns_body(Type="SubscriptionConfirmation"),
        sns_body(MessageId=None),
        sns_body(TopicArn=None),
        sns_body(Timestamp="yesterday"),
        sns_body(Message=None),
    ],
)
def test_malformed_envelopes_are_rejected(body):
    with pytest.raises(InvalidTrigger):
        parse_trigger(body)


def test_topic_filter():
    assert parse_trigger(sns_body(), expected_topic="asg-events").MessageId == "m-1"
    assert parse_trigger(sns_body(), expected_topic="arn:aws:sns:eu-west-1:123456789012:asg-events").MessageId == "m-1"
    with pytest.raises(InvalidTrigger, match="unexpected topic"):
        parse_trigger(sns_body(), expected_topic="other-topic")
    with pytest.raises(InvalidTrigger):
        parse_trigger(sns_body(), expected_topic="arn:aws:sns:eu-west-1:123456789012:other-topic")
