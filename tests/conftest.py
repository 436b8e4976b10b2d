import json
import os as _os
import sys

import pytest

# Ensure project root is importable (so `import main` / `import lbsync` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from lbsync import db  # noqa: E402
from lbsync.reload import ReloadOutcome  # noqa: E402
from lbsync.render import ConfigTemplate  # noqa: E402

TEMPLATE = """backend app
{%- for server in servers %}
    server {{ server.Name }} {{ server.Host }}:80 check
{%- endfor %}
"""


def instance(iid, state="running", group="web", name=None, itype="t3.micro", ip="10.0.0.1", extra_tags=None):
    """Build one DescribeInstances instance dict."""
    tags = []
    if group is not None:
        tags.append({"Key": "group", "Value": group})
    if name is not None:
        tags.append({"Key": "Name", "Value": name})
    tags.extend(extra_tags or [])
    inst = {
        "InstanceId": iid,
        "InstanceType": itype,
        "State": {"Code": 16, "Name": state},
        "PrivateDnsName": f"ip-{ip.replace('.', '-')}.ec2.internal" if ip else "",
        "Tags": tags,
    }
    if ip is not None:
        inst["PrivateIpAddress"] = ip
    return inst


def snapshot(*reservations):
    return {"Reservations": [{"ReservationId": f"r-{i}", "Instances": list(r)} for i, r in enumerate(reservations)]}


def sns_body(message_id="m-1", topic="arn:aws:sns:eu-west-1:123456789012:asg-events", **overrides):
    env = {
        "Type": "Notification",
        "MessageId": message_id,
        "TopicArn": topic,
        "Subject": "Auto Scaling: launch",
        "Message": '{"Event": "autoscaling:EC2_INSTANCE_LAUNCH"}',
        "Timestamp": "2024-03-01T12:00:00.000Z",
        "SignatureVersion": "1",
    }
    env.update(overrides)
    return json.dumps({k: v for k, v in env.items() if v is not None})


class FakeEC2:
    """Returns canned DescribeInstances pages and records the calls."""

    def __init__(self, *pages, error=None):
        self.pages = list(pages)
        self.error = error
        self.calls = []

    def describe_instances(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.pages[len(self.calls) - 1]


class FakeInventory:
    def __init__(self, backends=None, error=None):
        self.backends_list = list(backends or [])
        self.error = error
        self.calls = 0

    def backends(self, spec):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.backends_list)


class ReloadSpy:
    def __init__(self, ok=True):
        self.ok = ok
        self.calls = []

    def __call__(self, script_path, timeout_s):
        self.calls.append((script_path, timeout_s))
        if self.ok:
            return ReloadOutcome(True, 0, "reloaded\n", None, 0.01)
        return ReloadOutcome(False, 1, "haproxy: config error\n", "exit status 1", 0.01)


@pytest.fixture(autouse=True)
def journal(tmp_path):
    """Isolated sqlite journal per test."""
    db.set_db_path(str(tmp_path / "journal.db"))
    db.init_db()
    yield
    db.set_db_path(None)


@pytest.fixture
def template():
    return ConfigTemplate(TEMPLATE)
