from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3

from .consumer import QueueConsumer
from .inventory import Ec2Inventory
from .models import GroupFilterSpec
from .reconciler import Reconciler
from .render import ConfigTemplate
from .runtime import RuntimeState
from .settings import Settings


@dataclass
class Pipeline:
    settings: Settings
    runtime: RuntimeState
    reconciler: Reconciler
    consumer: QueueConsumer | None = None


def build_pipeline(cfg: Settings, session: Any = None, with_consumer: bool = True) -> Pipeline:
    """Wire the reconciliation pipeline from settings.

    Everything here runs once at startup, so errors (bad config, unreadable
    template, unknown queue, missing credentials) should stop the process.
    """
    cfg.validate()
    template = ConfigTemplate.from_file(cfg.haproxy_template_path)

    session = session or boto3.Session(region_name=cfg.sqs_region)
    runtime = RuntimeState()
    reconciler = Reconciler(
        inventory=Ec2Inventory(session.client("ec2")),
        spec=GroupFilterSpec(group_tag=cfg.ec2_group_name),
        template=template,
        dest=cfg.haproxy_file_dest,
        reload_script=cfg.haproxy_reload_script,
        runtime=runtime,
        reload_timeout_s=cfg.reload_timeout_s,
        expected_topic=cfg.sns_topic_name or None,
    )

    consumer = None
    if with_consumer:
        sqs = session.client("sqs")
        consumer = QueueConsumer(
            sqs_client=sqs,
            queue_url=QueueConsumer.resolve_queue_url(sqs, cfg.sqs_queue_name),
            reconciler=reconciler,
            wait_time_s=cfg.wait_time_s,
            max_messages=cfg.max_messages,
            backoff_base_s=cfg.backoff_base_s,
            backoff_max_s=cfg.backoff_max_s,
        )
    return Pipeline(settings=cfg, runtime=runtime, reconciler=reconciler, consumer=consumer)
