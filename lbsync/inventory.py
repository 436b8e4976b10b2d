from __future__ import annotations

import logging
from typing import Any, Iterator

from .models import BackendEndpoint, GroupFilterSpec

GROUP_TAG_KEY = "group"
NAME_TAG_KEY = "Name"

log = logging.getLogger("lbsync.inventory")


class MissingAddressError(Exception):
    """An eligible instance has no private address to route to."""


def _tags(instance: dict[str, Any]) -> Iterator[tuple[str, str]]:
    for tag in instance.get("Tags") or []:
        yield tag.get("Key", ""), tag.get("Value", "")


def select_backends(snapshot: dict[str, Any], spec: GroupFilterSpec) -> list[BackendEndpoint]:
    """Filter a DescribeInstances response down to the backends HAProxy should route to.

    An instance is kept only if it is tagged ``group=<spec.group_tag>`` and its
    lifecycle state is one of ``spec.states``. Order follows the snapshot
    (reservations, then instances) and is never re-sorted.
    """
    backends: list[BackendEndpoint] = []
    for reservation in snapshot.get("Reservations") or []:
        for instance in reservation.get("Instances") or []:
            in_group = False
            name: str | None = None
            for key, value in _tags(instance):
                if key == GROUP_TAG_KEY and value == spec.group_tag:
                    in_group = True
                if key == NAME_TAG_KEY:
                    name = value

            state = (instance.get("State") or {}).get("Name")
            if not (in_group and spec.accepts_state(state)):
                continue

            instance_id = instance.get("InstanceId", "")
            private_ip = instance.get("PrivateIpAddress")
            if not private_ip:
                raise MissingAddressError(f"Instance {instance_id} ({state}) has no private IP address.")

            backends.append(
                BackendEndpoint(
                    instance_id=instance_id,
                    instance_type=instance.get("InstanceType", ""),
                    private_ip=private_ip,
                    name=name,
                    private_dns=instance.get("PrivateDnsName") or None,
                )
            )
    return backends


class Ec2Inventory:
    """Reads the instance inventory for one tag group from EC2."""

    def __init__(self, ec2_client: Any):
        self.client = ec2_client

    def describe(self, group_tag: str) -> dict[str, Any]:
        """Return one merged DescribeInstances snapshot across all pages.

        Client errors (auth, throttling, network) propagate unchanged; callers decide on retries.
        """
        reservations: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"Filters": [{"Name": f"tag:{GROUP_TAG_KEY}", "Values": [group_tag]}]}
        while True:
            page = self.client.describe_instances(**kwargs)
            reservations.extend(page.get("Reservations") or [])
            token = page.get("NextToken")
            if not token:
                break
            kwargs["NextToken"] = token
        return {"Reservations": reservations}

    def backends(self, spec: GroupFilterSpec) -> list[BackendEndpoint]:
        found = select_backends(self.describe(spec.group_tag), spec)
        for ep in found:
            log.debug("found instance %s name=%s ip=%s", ep.instance_id, ep.display_name, ep.private_ip)
        return found
