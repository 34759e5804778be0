import logging

import pytest
from click.testing import CliRunner

from quire import __version__
from quire.cli import cli


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.basicConfig(force=True, handlers=[logging.NullHandler()])


def make_project(root):
    write(root / "quire.yaml", "collections:\n  posts: _posts\n")
    write(root / "_pages" / "index.html", "---\ntitle: Home\n---\n{{ this.title }}\n")
    write(
        root / "_pages" / "post.html",
        "---\ncollection: posts\npermalink: /blog/%basename/\n---\n{{ this.title }}\n",
    )
    write(root / "_posts" / "a.md", "---\ntitle: A\n---\nA\n")
    write(root / "_posts" / "b.md", "---\ntitle: B\ndraft: true\n---\nB\n")
    return root


def test_cli_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_build(monkeypatch, tmp_path):
    monkeypatch.chdir(make_project(tmp_path))
    runner = CliRunner()

    result = runner.invoke(cli, ["build"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 2 page views into 2 files" in result.output
    assert (tmp_path / "_site" / "blog" / "a" / "index.html").exists()
    assert not (tmp_path / "_site" / "blog" / "b").exists()

    result = runner.invoke(cli, ["build", "--drafts", "--verbose"], catch_exceptions=False)
    assert result.exit_code == 0
    assert (tmp_path / "_site" / "blog" / "b" / "index.html").exists()


def test_cli_build_failure(monkeypatch, tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / "bad.html", '---\ntitle: "%nope"\n---\nBody\n')
    monkeypatch.chdir(root)

    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert "_pages/bad.html" in result.output


def test_cli_build_invalid_config(monkeypatch, tmp_path):
    write(tmp_path / "quire.yaml", "- not\n- a mapping\n")
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "quire.yaml" in result.output


def test_cli_watch(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    called = {}

    class DummySession:
        def __init__(self, root, serve=False, http_port=None, ws_port=None):
            called["root"] = root
            called["serve"] = serve
            called["port"] = http_port
            called["ws_port"] = ws_port

        def start(self, include_drafts=False):
            called["drafts"] = include_drafts

    monkeypatch.setattr("quire.watch.WatchSession", DummySession)

    result = CliRunner().invoke(
        cli,
        ["watch", "--drafts", "--serve", "--port", "5050", "--ws-port", "5051"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert called == {
        "root": tmp_path,
        "serve": True,
        "port": 5050,
        "ws_port": 5051,
        "drafts": True,
    }
