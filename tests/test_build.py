import pytest

from quire.build import BuildError, build_site, load_collectable_items, load_page_views
from quire.config import load_config
from quire.documents import DataItem
from quire.pageviews import DynamicPageView, StaticPageView
from quire.tracker import FileKind


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


INDEX = """---
title: Home
---
{% include "_includes/nav.html" %}
{% for post in collections.posts %}<a href="{{ post.permalink }}">{{ post.title }}</a>{% endfor %}
{% for author in data.authors %}<span>{{ author.name }}</span>{% endfor %}
<footer>{{ site.title }}</footer>
"""


def make_project(root):
    write(
        root / "quire.yaml",
        "title: My Site\ncollections:\n  posts: _posts\ndatasets:\n  authors: _data/authors\n",
    )
    write(root / "_includes" / "nav.html", "<nav>NAV</nav>")
    write(root / "_pages" / "index.html.jinja", INDEX)
    write(
        root / "_pages" / "post.html.jinja",
        "---\ncollection: posts\npermalink: /blog/%basename/\n---\n<article>{{ this.content }}</article>\n",
    )
    write(
        root / "_pages" / "author.html.jinja",
        "---\ndataset: authors\npermalink: /authors/%basename/\n---\n{{ this.name }}\n",
    )
    write(root / "_posts" / "hello.md", "---\ntitle: Hello\n---\n# Hi\n")
    write(root / "_posts" / "secret.md", "---\ntitle: Secret\ndraft: true\n---\nshh\n")
    write(root / "_data" / "authors" / "ada.yaml", "name: Ada\n")
    return root


def test_build_site(tmp_path):
    root = make_project(tmp_path)
    result = build_site(root)
    output = root / "_site"

    assert result.output_dir == output
    assert len(result.page_views) == 3
    index = (output / "index.html").read_text(encoding="utf-8")
    assert "<nav>NAV</nav>" in index
    assert '<a href="/blog/hello/">Hello</a>' in index
    assert "Secret" not in index
    assert "<span>Ada</span>" in index
    assert "<footer>My Site</footer>" in index

    post = (output / "blog" / "hello" / "index.html").read_text(encoding="utf-8")
    assert '<h1 id="hi">Hi</h1>' in post
    assert not (output / "blog" / "secret").exists()
    assert (output / "authors" / "ada" / "index.html").read_text(encoding="utf-8") == "Ada"


def test_build_site_registers_tracker(tmp_path):
    result = build_site(make_project(tmp_path))
    tracker = result.tracker

    assert tracker.classify("_pages/index.html.jinja") is FileKind.STATIC_PAGEVIEW
    assert tracker.classify("_pages/post.html.jinja") is FileKind.DYNAMIC_PAGEVIEW
    assert tracker.classify("_posts/hello.md") is FileKind.CONTENT_ITEM
    assert tracker.classify("_data/authors/ada.yaml") is FileKind.DATA_ITEM
    assert tracker.get_template_dependents("_includes/nav.html") == ["_pages/index.html.jinja"]


def test_build_site_with_drafts(tmp_path):
    root = make_project(tmp_path)
    build_site(root, include_drafts=True)
    assert (root / "_site" / "blog" / "secret" / "index.html").exists()
    assert "Secret" in (root / "_site" / "index.html").read_text(encoding="utf-8")


def test_build_site_output_override(tmp_path):
    root = make_project(tmp_path / "project")
    target = tmp_path / "elsewhere"
    result = build_site(root, output_dir_override=target)
    assert result.output_dir == target
    assert (target / "index.html").exists()
    assert not (root / "_site").exists()


def test_build_site_cleans_output(tmp_path):
    root = make_project(tmp_path)
    stale = write(root / "_site" / "stale.html", "old")
    build_site(root)
    assert not stale.exists()

    write(root / "_site" / "kept.html", "keep")
    build_site(root, clean_output=False)
    assert (root / "_site" / "kept.html").exists()


def test_dynamic_page_views_get_their_own_items(tmp_path):
    root = make_project(tmp_path)
    write(
        root / "_pages" / "zz-archive.html.jinja",
        "---\ncollection: posts\npermalink: /archive/%basename/\n---\n{{ this.title }}\n",
    )
    result = build_site(root)
    dynamic = [pv for pv in result.page_views if isinstance(pv, DynamicPageView)]
    posts = [pv for pv in dynamic if pv.namespace == "posts"]

    assert len(posts) == 2
    first, second = (pv.get_collectable_item("_posts/hello.md") for pv in posts)
    assert first is not second
    assert first.get_permalink() == "/blog/hello/"
    assert second.get_permalink() == "/archive/hello/"
    assert (root / "_site" / "archive" / "hello" / "index.html").exists()


def test_build_error_for_undefined_variable(tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / "bad.html", '---\ntitle: "%nope"\n---\nBody\n')
    with pytest.raises(BuildError) as exc_info:
        build_site(root)
    assert exc_info.value.source_path == "_pages/bad.html"
    assert "%nope" in exc_info.value.message


def test_build_error_for_invalid_document(tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / "broken.html", "no front matter")
    with pytest.raises(BuildError) as exc_info:
        build_site(root)
    assert exc_info.value.source_path == "_pages/broken.html"


def test_build_error_for_template_failure(tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / "bad.html", "---\ntitle: x\n---\n{{ missing.attr }}\n")
    with pytest.raises(BuildError) as exc_info:
        build_site(root)
    assert exc_info.value.source_path == "_pages/bad.html"
    assert "line 4" in exc_info.value.message


def test_build_error_for_unknown_collection(tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / "x.html", "---\ncollection: nope\n---\nBody\n")
    with pytest.raises(BuildError) as exc_info:
        build_site(root)
    assert exc_info.value.source_path == "_pages/x.html"
    assert "nope" in exc_info.value.message


def test_custom_redirect_template(tmp_path):
    root = make_project(tmp_path)
    write(root / "quire.yaml", "redirect_template: _includes/redirect.html\n")
    write(root / "_includes" / "redirect.html", "Moved: {{ this.redirect_to }}")
    write(root / "_pages" / "index.html.jinja", "---\npermalink: [/, /home/]\n---\nHome\n")
    write(root / "_pages" / "post.html.jinja", "---\ntitle: x\n---\nx\n")
    write(root / "_pages" / "author.html.jinja", "---\ntitle: y\n---\ny\n")
    build_site(root)
    assert (root / "_site" / "home" / "index.html").read_text(encoding="utf-8") == "Moved: /"


def test_load_page_views_skips_hidden_and_output(tmp_path):
    root = make_project(tmp_path)
    write(root / "_pages" / ".draft.html", "---\n---\nhidden\n")
    config = load_config(root)
    config.pageview_folders = ["_pages"]
    page_views = load_page_views(config)
    assert [pv.relative_path for pv in page_views] == [
        "_pages/author.html.jinja",
        "_pages/index.html.jinja",
        "_pages/post.html.jinja",
    ]
    assert isinstance(page_views[1], StaticPageView)


def test_load_collectable_items_filters_data_files(tmp_path):
    write(tmp_path / "_data" / "a.yaml", "name: A\n")
    write(tmp_path / "_data" / "b.json", '{"name": "B"}')
    write(tmp_path / "_data" / "notes.txt", "ignored")
    items = load_collectable_items(tmp_path, "_data", "people", DataItem)
    assert [item.get("name") for item in items] == ["A", "B"]
    assert all(item.namespace == "people" for item in items)
