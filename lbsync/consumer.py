from __future__ import annotations

import time
from threading import Event, Thread
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from . import db
from .reconciler import Reconciler


def backoff_delay(failures: int, base_s: float, max_s: float) -> float:
    """Delay before the next receive after ``failures`` consecutive errors.

    ``base_s * 2**(failures-1)``, capped at ``max_s``. ``base_s == 0`` means retry immediately.
    """
    if failures <= 0 or base_s <= 0:
        return 0.0
    return min(max_s, base_s * (2 ** (failures - 1)))


class QueueConsumer:
    """Long-polls an SQS queue and hands each message to the reconciler.

    Every received message is deleted after its pass, whatever the outcome,
    including messages that failed validation.
    """

    def __init__(
        self,
        sqs_client: Any,
        queue_url: str,
        reconciler: Reconciler,
        wait_time_s: int = 10,
        max_messages: int = 1,
        backoff_base_s: float = 1.0,
        backoff_max_s: float = 30.0,
        sleep: Callable[[float], None] | None = None,
    ):
        self.client = sqs_client
        self.queue_url = queue_url
        self.reconciler = reconciler
        self.wait_time_s = wait_time_s
        self.max_messages = max_messages
        self.backoff_base_s = backoff_base_s
        self.backoff_max_s = backoff_max_s
        self._stop = Event()
        self._sleep = sleep or self._stop.wait
        self._thr: Thread | None = None
        self.receive_failures = 0

    @staticmethod
    def resolve_queue_url(sqs_client: Any, queue_name: str) -> str:
        return sqs_client.get_queue_url(QueueName=queue_name)["QueueUrl"]

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self.run, name="lbsync-consumer", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the consumer thread to exit. Returns True if it is no longer running."""
        if self._thr is None:
            return True
        self._thr.join(timeout)
        return not self._thr.is_alive()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        db.log_event("INFO", f"Consuming from queue {self.queue_url}")
        self.reconciler.runtime.set_consumer_running(True)
        try:
            while not self._stop.is_set():
                if not self.poll_once():
                    delay = backoff_delay(self.receive_failures, self.backoff_base_s, self.backoff_max_s)
                    if delay:
                        self._sleep(delay)
        finally:
            self.reconciler.runtime.set_consumer_running(False)
            db.log_event("INFO", "Consumer stopped")

    def poll_once(self) -> bool:
        """Receive one batch and process it. Returns False if the receive failed."""
        try:
            resp = self.client.receive_message(
                QueueUrl=self.queue_url,
                WaitTimeSeconds=self.wait_time_s,
                MaxNumberOfMessages=self.max_messages,
            )
        except (BotoCoreError, ClientError) as e:
            self.receive_failures += 1
            db.log_event("ERROR", f"Error when receiving message (attempt {self.receive_failures}): {e}")
            return False

        self.receive_failures = 0
        for msg in resp.get("Messages") or []:
            try:
                self.reconciler.handle(msg.get("Body"))
            except Exception as e:
                db.log_event("ERROR", f"Reconciliation pass crashed: {type(e).__name__}: {e}")
            self._delete(msg)
        return True

    def _delete(self, msg: dict[str, Any]) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=msg["ReceiptHandle"])
        except (BotoCoreError, ClientError) as e:
            # The message will be redelivered after its visibility timeout.
            db.log_event("WARN", f"Could not delete message {msg.get('MessageId')}: {e}")
