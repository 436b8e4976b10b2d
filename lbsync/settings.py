from __future__ import annotations

import os
from dataclasses import dataclass


class ConfigError(Exception):
    """Raised at startup when the process configuration is unusable."""


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # AWS
    sqs_region: str = ""
    sqs_queue_name: str = ""
    sns_topic_name: str = ""
    ec2_group_name: str = ""

    # HAProxy
    haproxy_file_dest: str = ""
    haproxy_reload_script: str = ""
    haproxy_template_path: str = "haproxy.cfg.template"

    # Loop tuning
    wait_time_s: int = 10
    max_messages: int = 1
    reload_timeout_s: float = 30.0
    # Backoff after a failed receive. base=0 retries immediately.
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0

    # Journal
    db_path: str = "lbsync.db"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            sqs_region=_env_str("AWS_SQS_REGION"),
            sqs_queue_name=_env_str("AWS_SQS_QUEUE_NAME"),
            sns_topic_name=_env_str("AWS_SNS_TOPIC_NAME"),
            ec2_group_name=_env_str("AWS_EC2_GROUP_NAME"),
            haproxy_file_dest=_env_str("HAPROXY_FILE_DEST"),
            haproxy_reload_script=_env_str("HAPROXY_RELOAD_SCRIPT"),
            haproxy_template_path=_env_str("HAPROXY_TEMPLATE_PATH", "haproxy.cfg.template"),
            wait_time_s=_env_int("LBSYNC_WAIT_TIME_S", 10),
            max_messages=_env_int("LBSYNC_MAX_MESSAGES", 1),
            reload_timeout_s=_env_float("LBSYNC_RELOAD_TIMEOUT_S", 30.0),
            backoff_base_s=_env_float("LBSYNC_BACKOFF_BASE_S", 1.0),
            backoff_max_s=_env_float("LBSYNC_BACKOFF_MAX_S", 30.0),
            db_path=_env_str("LBSYNC_DB_PATH", "lbsync.db"),
        )

    def validate(self) -> "Settings":
        """Fail fast on missing or out-of-range values. Returns self for chaining."""
        required = {
            "AWS_SQS_REGION": self.sqs_region,
            "AWS_SQS_QUEUE_NAME": self.sqs_queue_name,
            "AWS_EC2_GROUP_NAME": self.ec2_group_name,
            "HAPROXY_FILE_DEST": self.haproxy_file_dest,
            "HAPROXY_RELOAD_SCRIPT": self.haproxy_reload_script,
        }
        missing = sorted(k for k, v in required.items() if not v)
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
        # SQS caps long polling at 20s and batches at 10 messages.
        if not 0 <= self.wait_time_s <= 20:
            raise ConfigError("LBSYNC_WAIT_TIME_S must be between 0 and 20.")
        if not 1 <= self.max_messages <= 10:
            raise ConfigError("LBSYNC_MAX_MESSAGES must be between 1 and 10.")
        if self.backoff_base_s < 0 or self.backoff_max_s < self.backoff_base_s:
            raise ConfigError("Backoff must satisfy 0 <= LBSYNC_BACKOFF_BASE_S <= LBSYNC_BACKOFF_MAX_S.")
        return self


settings = Settings.from_env()
