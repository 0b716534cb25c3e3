import gzip
import logging

from githarvest.core.projects import ProjectIdAllocator
from githarvest.sources.feed import FeedError, iter_feed_records, iter_project_feed


def _write_feed(tmp_path, text, name="projects.csv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_single_and_two_field_records(tmp_path):
    path = _write_feed(
        tmp_path,
        "https://example.com/a.git\n"
        "https://example.com/b.git,10\n"
        "https://example.com/c.git\n",
    )
    projects = list(iter_project_feed(path, ProjectIdAllocator()))
    assert [(p.url, p.id) for p in projects] == [
        ("https://example.com/a.git", 0),
        ("https://example.com/b.git", 10),
        ("https://example.com/c.git", 11),
    ]


def test_comments_and_blank_lines_are_skipped(tmp_path):
    path = _write_feed(tmp_path, "# header\n\nhttps://example.com/a.git\n   \n")
    assert [r.url for r in iter_feed_records(path)] == ["https://example.com/a.git"]


def test_malformed_records_are_reported_and_skipped(tmp_path, caplog):
    caplog.set_level(logging.ERROR, logger="githarvest")
    path = _write_feed(
        tmp_path,
        "https://example.com/a.git,1,extra\n"
        "https://example.com/b.git,notanumber\n"
        "https://example.com/c.git,-4\n"
        "https://example.com/d.git,2\n",
    )
    errors = []
    records = list(iter_feed_records(path, on_error=errors.append))

    assert [(r.url, r.project_id, r.lineno) for r in records] == [("https://example.com/d.git", 2, 4)]
    assert [e.lineno for e in errors] == [1, 2, 3]
    assert all(isinstance(e, FeedError) for e in errors)
    assert f"{path}, line 2:" in str(errors[1])
    messages = [rec.getMessage() for rec in caplog.records]
    assert sum("Invalid format of the project url input, skipping." in m for m in messages) == 3


def test_quoted_fields_are_unquoted(tmp_path):
    path = _write_feed(tmp_path, '"https://example.com/a,b.git", 5\n')
    records = list(iter_feed_records(path))
    assert records[0].url == "https://example.com/a,b.git"
    assert records[0].project_id == 5


def test_gzip_feed(tmp_path):
    path = tmp_path / "projects.csv.gz"
    with gzip.open(path, "wt", encoding="utf-8") as fp:
        fp.write("https://example.com/a.git,3\n")
    allocator = ProjectIdAllocator()
    projects = list(iter_project_feed(path, allocator))
    assert [(p.url, p.id) for p in projects] == [("https://example.com/a.git", 3)]
    assert allocator.next_id == 4
