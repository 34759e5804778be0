from collections.abc import Mapping
from datetime import date, timedelta

import pytest

from quire.frontmatter import (
    DocumentFormatError,
    FrontMatterDocument,
    JailedDocument,
    UndefinedVariableError,
    evaluate_string,
    expand_value,
    parse_date,
    split_front_matter,
)
from quire.templates import JinjaTemplateBridge


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_split_front_matter():
    front_matter, body, offset = split_front_matter("---\ntitle: Hi\n---\nBody\n")
    assert front_matter == {"title": "Hi"}
    assert body == "Body"
    assert offset == 3


def test_split_front_matter_counts_blank_lines_before_body():
    _, body, offset = split_front_matter("---\na: 1\nb: 2\n---\n\n\nBody")
    assert body == "Body"
    assert offset == 6


def test_split_front_matter_empty_block():
    front_matter, body, _ = split_front_matter("---\n---\nBody")
    assert front_matter == {}
    assert body == "Body"


@pytest.mark.parametrize(
    "text",
    [
        "no front matter here",
        "---\ntitle: x\n---\n",
        "---\ntitle: x\n---\n   \n",
        "---\n- a\n- b\n---\nBody",
        "---\ntitle: [unclosed\n---\nBody",
    ],
)
def test_split_front_matter_rejects_invalid_documents(text):
    with pytest.raises(DocumentFormatError):
        split_front_matter(text, "page.html")


def test_evaluate_string():
    assert evaluate_string("/%year/%slug/", {"year": 2024, "slug": "hi"}) == "/2024/hi/"
    assert evaluate_string("100% sure", {}) == "100% sure"
    with pytest.raises(UndefinedVariableError) as exc_info:
        evaluate_string("%missing", {})
    assert exc_info.value.token == "%missing"


def test_expand_value_is_cartesian_in_order_of_appearance():
    expanded = expand_value(
        "/%lang/%tag/", {"tag": ["x", "y"], "lang": ["en", "fr"]}
    )
    assert [value.evaluated for value in expanded] == [
        "/en/x/",
        "/en/y/",
        "/fr/x/",
        "/fr/y/",
    ]
    assert expanded[1].iterators == {"lang": "en", "tag": "y"}


def test_expand_value_scalar_only():
    expanded = expand_value("/%slug/", {"slug": "one"})
    assert len(expanded) == 1
    assert expanded[0].evaluated == "/one/"
    assert expanded[0].iterators == {}


def test_parse_date():
    assert parse_date(date(2024, 3, 5)).day == 5
    assert parse_date("2023-12-01T10:00:00").month == 12
    assert parse_date(0).year == 1970
    assert parse_date("not a date") is None
    assert parse_date(True) is None


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        FrontMatterDocument(tmp_path / "missing.md", tmp_path)


def test_variable_evaluation(tmp_path):
    path = write(tmp_path / "page.html", '---\ntitle: "%name"\nname: Ada\n---\nBody\n')
    document = FrontMatterDocument(path, tmp_path)
    assert document.evaluate_front_matter()["title"] == "Ada"


def test_undefined_variable(tmp_path):
    path = write(tmp_path / "page.html", '---\ntitle: "%missing"\n---\nBody\n')
    document = FrontMatterDocument(path, tmp_path)
    with pytest.raises(UndefinedVariableError) as exc_info:
        document.evaluate_front_matter()
    assert exc_info.value.token == "%missing"
    assert exc_info.value.source_path == "page.html"
    assert "page.html" in str(exc_info.value)


def test_evaluation_is_idempotent(tmp_path):
    path = write(
        tmp_path / "page.html",
        '---\ntitle: "%name"\nname: Ada\nmeta:\n  desc: "By %name"\n  tags: ["%name", b]\n---\nBody\n',
    )
    document = FrontMatterDocument(path, tmp_path)
    first = dict(document.evaluate_front_matter())
    second = dict(document.evaluate_front_matter())
    assert first == second
    assert first["meta"] == {"desc": "By Ada", "tags": ["Ada", "b"]}
    assert document.front_matter_evaluated


def test_evaluation_with_variables_overrides(tmp_path):
    path = write(tmp_path / "page.html", '---\ntitle: "%name"\nname: Ada\n---\nBody\n')
    document = FrontMatterDocument(path, tmp_path)
    result = document.evaluate_front_matter({"name": "Grace", "title": "%name!"})
    assert result["title"] == "Grace!"


def test_date_keys(tmp_path):
    path = write(tmp_path / "post.md", "---\ndate: 2024-03-05\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get("year") == "2024"
    assert document.get("month") == "03"
    assert document.get("day") == "05"


def test_quoted_utc_date_keys(tmp_path):
    path = write(
        tmp_path / "post.md",
        '---\ndate: "2024-01-05T10:00:00Z"\npermalink: /%year/%month/%day/\n---\nBody\n',
    )
    document = FrontMatterDocument(path, tmp_path)
    assert parse_date("2024-01-05T10:00:00Z").utcoffset() == timedelta(0)
    assert document.get_permalink() == "/2024/01/05/"


def test_unparseable_date_is_ignored(tmp_path):
    path = write(tmp_path / "post.md", "---\ndate: someday\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get("year") is None


def test_filename_keys(tmp_path):
    path = write(tmp_path / "posts" / "hello.md.jinja", "---\ntitle: x\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get("filename") == "hello.md.jinja"
    assert document.get("basename") == "hello"
    assert document.relative_path == "posts/hello.md.jinja"


def test_permalink_from_path(tmp_path):
    path = write(tmp_path / "_pages" / "about.twig", "---\ntitle: About\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get_permalink() == "about"
    assert document.get_target_file() == "about/index.html"


def test_permalink_from_path_keeps_extension(tmp_path):
    path = write(tmp_path / "_pages" / "about.html.twig", "---\ntitle: About\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get_permalink() == "about.html"
    assert document.get_target_file() == "about.html"


def test_explicit_permalink(tmp_path):
    path = write(
        tmp_path / "_pages" / "post.html",
        '---\nslug: hello world\npermalink: "/blog/%slug/"\n---\nBody\n',
    )
    document = FrontMatterDocument(path, tmp_path)
    assert document.get_permalink() == "/blog/hello-world/"
    assert document.get_target_file() == "blog/hello-world/index.html"
    assert document.front_matter["permalink"] == "/blog/hello-world/"


def test_permalink_is_memoized(tmp_path):
    path = write(tmp_path / "page.html", "---\npermalink: /first/\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    first = document.get_permalink()
    document.front_matter["permalink"] = "/second/"
    assert document.get_permalink() == first


def test_refresh_rereads_file(tmp_path):
    path = write(tmp_path / "page.html", "---\npermalink: /first/\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    assert document.get_permalink() == "/first/"

    write(path, "---\npermalink: /second/\n---\nNew body\n")
    document.refresh()
    assert not document.permalink_evaluated
    assert document.get_permalink() == "/second/"
    assert document.get_content() == "New body"


def test_permalink_list_declares_redirects(tmp_path):
    path = write(
        tmp_path / "page.html",
        "---\npermalink:\n  - /new/\n  - /old page/\n  - /older/\n---\nBody\n",
    )
    document = FrontMatterDocument(path, tmp_path)
    assert document.get_permalink() == "/new/"
    assert document.get_redirects() == ["/old-page/", "/older/"]


def test_in_memory_text(tmp_path):
    document = FrontMatterDocument(
        tmp_path / "virtual.html", tmp_path, text="---\ntitle: x\n---\nBody"
    )
    assert document.get("title") == "x"


def test_jail_is_read_only_view(tmp_path):
    path = write(tmp_path / "page.html", "---\ntitle: Hello\n---\nBody text\n")
    document = FrontMatterDocument(path, tmp_path)
    jail = document.create_jail()

    assert isinstance(jail, JailedDocument)
    assert jail["title"] == "Hello"
    assert jail["content"] == "Body text"
    assert jail["permalink"] == "page.html"
    assert jail["target_file"] == "page.html"
    assert jail["relative_path"] == "page.html"
    assert "title" in jail
    assert "missing" not in jail
    assert set(jail) >= {"title", "content", "permalink"}

    with pytest.raises(KeyError):
        jail["missing"]
    with pytest.raises(TypeError):
        jail["title"] = "changed"
    with pytest.raises(AttributeError):
        jail.extra = "x"


def test_jail_behaves_as_mapping(tmp_path):
    path = write(tmp_path / "page.html", "---\ntitle: Hello\ntags: [a, b]\n---\nBody\n")
    document = FrontMatterDocument(path, tmp_path)
    jail = document.create_jail()

    assert isinstance(jail, Mapping)
    assert jail.get("title") == "Hello"
    assert jail.get("missing", "none") == "none"
    assert dict(jail.items())["tags"] == ["a", "b"]
    assert "content" in jail.keys()
    assert len(jail) == len(list(jail.values()))
    assert jail == document.create_jail()
    assert jail != FrontMatterDocument(path, tmp_path).create_jail()
    assert len({jail, document.create_jail()}) == 1


def test_jail_mapping_methods_in_templates(tmp_path):
    path = write(tmp_path / "page.html", "---\ntitle: Hello\nlang: en\n---\nBody\n")
    jail = FrontMatterDocument(path, tmp_path).create_jail()
    bridge = JinjaTemplateBridge(tmp_path)
    template = bridge.create_template(
        "{{ this.get('title') }}|{{ this.get('draft', 'no') }}|"
        "{% for key, value in this.items() if key == 'lang' %}{{ key }}={{ value }}{% endfor %}"
    )
    assert template.render({"this": jail}) == "Hello|no|lang=en"
