import os

import pytest

from lbsync.models import BackendEndpoint
from lbsync.render import ConfigTemplate, PublishError, TemplateLoadError, publish, render

A = BackendEndpoint(instance_id="i-a", instance_type="t3.micro", private_ip="10.0.0.1", name="web-a")
B = BackendEndpoint(instance_id="i-b", instance_type="m5.large", private_ip="10.0.0.2")


def _leftovers(directory):
    return [n for n in os.listdir(directory) if n.startswith(".lbsync-")]


def test_render_substitutes_name_and_host_per_backend(template):
    assert render([A, B], template) == (
        "backend app\n"
        "    server web-a 10.0.0.1:80 check\n"
        "    server m5.largei-b 10.0.0.2:80 check\n"
    )


def test_render_is_deterministic(template):
    first = render([A, B], template)
    second = render([A, B], template)
    assert first.encode() == second.encode()


def test_render_keeps_backend_order(template):
    assert render([B, A], template).index("m5.largei-b") < render([B, A], template).index("web-a")


def test_render_of_empty_set_keeps_static_parts(template):
    assert render([], template) == "backend app\n"


def test_template_syntax_error_is_reported_at_load():
    with pytest.raises(TemplateLoadError):
        ConfigTemplate("{% for server in servers %}")


def test_template_missing_file(tmp_path):
    with pytest.raises(TemplateLoadError, match="Cannot read template"):
        ConfigTemplate.from_file(str(tmp_path / "nope.template"))


def test_template_from_file(tmp_path):
    p = tmp_path / "haproxy.cfg.template"
    p.write_text("{% for s in servers %}{{ s.Name }}={{ s.Host }};{% endfor %}")
    tpl = ConfigTemplate.from_file(str(p))
    assert tpl.origin == str(p)
    assert render([A, B], tpl) == "web-a=10.0.0.1;m5.largei-b=10.0.0.2;"


def test_shipped_template_renders():
    root = os.path.dirname(os.path.dirname(__file__))
    tpl = ConfigTemplate.from_file(os.path.join(root, "haproxy.cfg.template"))
    out = render([A, B], tpl)
    assert "    server web-a 10.0.0.1:80 check\n" in out
    assert out.endswith("    server m5.largei-b 10.0.0.2:80 check\n")


def test_publish_replaces_file(tmp_path):
    dest = tmp_path / "haproxy.cfg"
    dest.write_text("old\n")
    publish("new\n", str(dest))
    assert dest.read_text() == "new\n"
    assert _leftovers(tmp_path) == []


def test_publish_creates_missing_file(tmp_path):
    dest = tmp_path / "haproxy.cfg"
    publish("fresh\n", str(dest))
    assert dest.read_text() == "fresh\n"


def test_publish_into_missing_directory_fails(tmp_path):
    with pytest.raises(PublishError):
        publish("x\n", str(tmp_path / "missing" / "haproxy.cfg"))


def test_failed_publish_leaves_previous_file_untouched(tmp_path, monkeypatch):
    dest = tmp_path / "haproxy.cfg"
    dest.write_text("working config\n")

    def boom(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(PublishError, match="No space left"):
        publish("new config\n", str(dest))

    assert dest.read_text() == "working config\n"
    assert _leftovers(tmp_path) == []
