from __future__ import annotations

from dataclasses import dataclass, field

RUNNING = "running"
PENDING = "pending"


def display_name(name: str | None, instance_type: str, instance_id: str) -> str:
    """Name used for the HAProxy server line.

    An explicit ``Name`` tag wins; otherwise fall back to type + id
    (``"m5.large"`` + ``"i-123"`` -> ``"m5.largei-123"``).
    """
    if name:
        return name
    return f"{instance_type}{instance_id}"


@dataclass(frozen=True)
class BackendEndpoint:
    instance_id: str
    instance_type: str
    private_ip: str
    name: str | None = None
    private_dns: str | None = None

    @property
    def display_name(self) -> str:
        return display_name(self.name, self.instance_type, self.instance_id)


@dataclass(frozen=True)
class GroupFilterSpec:
    group_tag: str
    states: frozenset[str] = field(default_factory=lambda: frozenset({RUNNING, PENDING}))

    def accepts_state(self, state: str | None) -> bool:
        return state in self.states


@dataclass(frozen=True)
class TemplateItem:
    # Field names are what the template sees: {{ server.Name }} / {{ server.Host }}.
    Name: str
    Host: str

    @classmethod
    def from_endpoint(cls, ep: BackendEndpoint) -> "TemplateItem":
        return cls(Name=ep.display_name, Host=ep.private_ip)
