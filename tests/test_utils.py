import pytest

from quire.utils import (
    ensure_clean_dir,
    get_extension,
    is_data_file,
    is_markdown,
    is_template,
    relative_posix,
    remove_extension,
    sanitize_permalink,
    write_output_file,
)


def test_sanitize_permalink_cleans_value():
    assert sanitize_permalink("/blog//my post!.html.twig") == "/blog/my-post.html"
    assert sanitize_permalink("./about.jinja") == "about"
    assert sanitize_permalink("/a/b/") == "/a/b/"


def test_sanitize_permalink_degrades_gracefully():
    assert sanitize_permalink("") == ""
    assert sanitize_permalink(None) == ""
    assert sanitize_permalink("?!*") == ""


@pytest.mark.parametrize(
    "value",
    [
        "",
        " ",
        "./././x",
        "a b/c.html.jinja",
        "//x//y",
        ".twig",
        "weird!!chars?.jinja.twig",
        "/tags/C++ & more/",
        "./.jinja",
    ],
)
def test_sanitize_permalink_is_idempotent(value):
    once = sanitize_permalink(value)
    assert sanitize_permalink(once) == once


def test_extension_helpers():
    assert get_extension("blog/post.html.jinja") == "jinja"
    assert get_extension("blog/post/") == ""
    assert get_extension("README") == ""
    assert remove_extension("blog/post.html.jinja") == "blog/post.html"
    assert remove_extension("blog/post") == "blog/post"


def test_file_type_checks():
    assert is_template("_includes/nav.html.jinja")
    assert is_template("layout.twig")
    assert not is_template("post.md")
    assert is_markdown("post.md")
    assert is_markdown("post.md.jinja")
    assert not is_markdown("page.html")
    assert is_data_file("authors.yaml")
    assert is_data_file("authors.json")
    assert not is_data_file("authors.md")


def test_relative_posix(tmp_path):
    assert relative_posix(tmp_path / "a" / "b.md", tmp_path) == "a/b.md"
    outside = tmp_path.parent / "elsewhere.md"
    assert relative_posix(outside, tmp_path) == outside.as_posix()


def test_write_output_file_creates_parents(tmp_path):
    written = write_output_file(tmp_path, "/blog/post/index.html", "hello")
    assert written == tmp_path / "blog" / "post" / "index.html"
    assert written.read_text(encoding="utf-8") == "hello"

    write_output_file(tmp_path, "blog/post/index.html", "again")
    assert written.read_text(encoding="utf-8") == "again"


def test_ensure_clean_dir(tmp_path):
    target = tmp_path / "out"
    (target / "nested").mkdir(parents=True)
    (target / "nested" / "file.txt").write_text("x", encoding="utf-8")
    ensure_clean_dir(target)
    assert target.exists()
    assert list(target.iterdir()) == []
