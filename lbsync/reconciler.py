from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Protocol, Sequence

import jinja2
from botocore.exceptions import BotoCoreError, ClientError

from . import db
from .api_models import InvalidTrigger, parse_trigger
from .inventory import MissingAddressError
from .models import BackendEndpoint, GroupFilterSpec
from .reload import ReloadOutcome, reload
from .render import ConfigTemplate, PublishError, publish, render
from .runtime import PassResult, RuntimeState

ReloadFn = Callable[[str, float], ReloadOutcome]
PublishFn = Callable[[str, str], None]


class Inventory(Protocol):
    def backends(self, spec: GroupFilterSpec) -> list[BackendEndpoint]: ...


class Reconciler:
    """Runs one discover -> render -> publish -> reload pass per trigger.

    Holds no progress between passes; the next trigger is the next chance to
    converge. Failures are journaled and end the pass, never the caller.
    """

    def __init__(
        self,
        inventory: Inventory,
        spec: GroupFilterSpec,
        template: ConfigTemplate,
        dest: str,
        reload_script: str,
        runtime: RuntimeState | None = None,
        reload_timeout_s: float = 30.0,
        expected_topic: str | None = None,
        reload_fn: ReloadFn = reload,
        publish_fn: PublishFn = publish,
    ):
        self.inventory = inventory
        self.spec = spec
        self.template = template
        self.dest = dest
        self.reload_script = reload_script
        self.runtime = runtime or RuntimeState()
        self.reload_timeout_s = reload_timeout_s
        self.expected_topic = expected_topic or None
        self._reload = reload_fn
        self._publish = publish_fn
        # Queue consumer and manual API triggers must not overlap.
        self._pass_lock = Lock()

    def handle(self, body: str | None) -> PassResult:
        """Validate a queue message body and reconcile if it is a proper trigger."""
        started_at, t0 = db.utc_now(), time.monotonic()
        try:
            event = parse_trigger(body, self.expected_topic)
        except InvalidTrigger as e:
            db.log_event("WARN", f"Invalid trigger message skipped: {e}", group=self.spec.group_tag)
            return self._finish(PassResult("invalid", started_at, _ms(t0), detail=str(e)))

        db.log_event("INFO", f"Trigger {event.MessageId} from {event.TopicArn} ({event.Subject or 'no subject'})", group=self.spec.group_tag)
        return self.reconcile(trigger_id=event.MessageId)

    def reconcile(self, trigger_id: str | None = None) -> PassResult:
        with self._pass_lock:
            return self._run_pass(trigger_id)

    def _run_pass(self, trigger_id: str | None) -> PassResult:
        started_at, t0 = db.utc_now(), time.monotonic()
        group = self.spec.group_tag

        try:
            backends = self.inventory.backends(self.spec)
        except MissingAddressError as e:
            db.log_event("ERROR", f"Inventory rejected: {e}", group=group)
            return self._finish(PassResult("discover_failed", started_at, _ms(t0), trigger_id, detail=str(e)))
        except (BotoCoreError, ClientError) as e:
            # Network, auth and throttling errors end the pass; the next trigger retries.
            db.log_event("ERROR", f"Error when getting EC2 data: {type(e).__name__}: {e}", group=group)
            return self._finish(
                PassResult("discover_failed", started_at, _ms(t0), trigger_id, detail=f"{type(e).__name__}: {e}")
            )

        try:
            text = render(backends, self.template)
            self._publish(text, self.dest)
        except PublishError as e:
            db.log_event("ERROR", f"Config not published, skipping reload: {e}", group=group)
            return self._finish(PassResult("publish_failed", started_at, _ms(t0), trigger_id, len(backends), str(e)))
        except jinja2.TemplateError as e:
            # e.g. an undefined variable under StrictUndefined
            db.log_event("ERROR", f"Config render failed, skipping reload: {type(e).__name__}: {e}", group=group)
            return self._finish(
                PassResult("publish_failed", started_at, _ms(t0), trigger_id, len(backends), f"{type(e).__name__}: {e}")
            )
        db.log_event("INFO", f"Config {self.dest} populated with {_describe(backends)}", group=group)

        db.log_event("INFO", f"Executing {self.reload_script}", group=group)
        outcome = self._reload(self.reload_script, self.reload_timeout_s)
        if outcome.ok:
            db.log_event("INFO", f"Output of {self.reload_script}: {outcome.output.strip()}", group=group)
            return self._finish(PassResult("reloaded", started_at, _ms(t0), trigger_id, len(backends)))

        db.log_event(
            "ERROR",
            f"Reload {self.reload_script} failed ({outcome.error}): {outcome.output.strip()}",
            group=group,
        )
        return self._finish(
            PassResult("reload_failed", started_at, _ms(t0), trigger_id, len(backends), outcome.error or "")
        )

    def _finish(self, result: PassResult) -> PassResult:
        self.runtime.record(result)
        db.record_pass(
            result.started_at, result.trigger_id, result.outcome, result.backends, result.detail, result.duration_ms
        )
        return result


def _ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000.0, 2)


def _describe(backends: Sequence[BackendEndpoint]) -> str:
    if not backends:
        return "no backends"
    return ", ".join(f"{ep.display_name}={ep.private_ip}" for ep in backends)
