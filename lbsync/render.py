from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from typing import Sequence

import jinja2

from .models import BackendEndpoint, TemplateItem


class TemplateLoadError(Exception):
    pass


class PublishError(Exception):
    pass


def _environment() -> jinja2.Environment:
    # StrictUndefined: a typo in the template must fail at render time, not emit an empty server line.
    return jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


@dataclass(frozen=True)
class ConfigTemplate:
    """A compiled HAProxy config template, loaded once at startup.

    The template receives ``servers``: a list of items with ``Name`` and ``Host``.
    """

    source: str
    origin: str = "<string>"

    def __post_init__(self) -> None:
        try:
            compiled = _environment().from_string(self.source)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateLoadError(f"{self.origin}:{e.lineno}: {e.message}") from e
        object.__setattr__(self, "_compiled", compiled)

    @classmethod
    def from_file(cls, path: str) -> "ConfigTemplate":
        try:
            with open(path, encoding="utf-8") as f:
                source = f.read()
        except OSError as e:
            raise TemplateLoadError(f"Cannot read template {path}: {e}") from e
        return cls(source=source, origin=path)

    def render_items(self, items: Sequence[TemplateItem]) -> str:
        return self._compiled.render(servers=list(items))  # type: ignore[attr-defined]


def render(backends: Sequence[BackendEndpoint], template: ConfigTemplate) -> str:
    """Render the backend set into config text. Same input, same bytes."""
    return template.render_items([TemplateItem.from_endpoint(ep) for ep in backends])


def publish(text: str, dest: str) -> None:
    """Atomically replace ``dest`` with ``text``.

    Writes a temp file next to ``dest`` and renames it into place, so readers
    see either the previous file or the complete new one.
    """
    directory = os.path.dirname(os.path.abspath(dest))
    try:
        fd, tmp = tempfile.mkstemp(prefix=".lbsync-", suffix=".tmp", dir=directory)
    except OSError as e:
        raise PublishError(f"Cannot create temp file in {directory}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if os.path.exists(dest):
            # Keep the mode of the file we replace (mkstemp creates 0600).
            os.chmod(tmp, os.stat(dest).st_mode & 0o777)
        else:
            os.chmod(tmp, 0o644)
        os.replace(tmp, dest)
    except OSError as e:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise PublishError(f"Cannot write {dest}: {e}") from e
