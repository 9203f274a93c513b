"""Tests for resolving document paths to line and column."""

import pytest

from services.errors import DocumentParseError, DocumentReadError
from services.source_mapper import Source, locate_all

DOCUMENT = """\
kind: Service
metadata:
  name: web
  labels:
    app: web
spec:
  ports:
    - port: 80
  selector: {app: web, tier: "front"}
"""


@pytest.fixture
def source():
    return Source.from_text(DOCUMENT, "service.yaml")


@pytest.mark.parametrize(
    "path, line, column",
    [
        ((), 1, 1),
        (("kind",), 1, 7),
        (("metadata",), 3, 3),
        (("metadata", "name"), 3, 9),
        (("metadata", "labels", "app"), 5, 10),
        (("spec", "ports"), 8, 5),
        (("spec", "selector", "tier"), 9, 30),
    ],
)
def test_exact_locations(source, path, line, column):
    location = source.location(path)
    assert (location.line, location.column) == (line, column)
    assert location.exact
    assert location.unresolved == []
    assert location.path == list(path)
    assert location.file == "service.yaml"


def test_location_string_format(source):
    assert str(source.location(("kind",))) == "service.yaml:1:7"


def test_missing_key_stops_at_closest_node(source):
    location = source.location(("metadata", "annotations", "owner"))
    assert (location.line, location.column) == (3, 3)
    assert not location.exact
    assert location.unresolved == ["annotations", "owner"]


def test_sequence_stops_descent(source):
    location = source.location(("spec", "ports", "0"))
    assert (location.line, location.column) == (8, 5)
    assert not location.exact
    assert location.unresolved == ["0"]


def test_scalar_stops_descent(source):
    location = source.location(("kind", "name"))
    assert (location.line, location.column) == (1, 7)
    assert location.unresolved == ["name"]


def test_duplicate_keys_resolve_to_last_definition():
    source = Source.from_text("a: 1\nb: 2\na: 3\n", "dup.yaml")
    assert source.location(("a",)).line == 3


def test_merge_keys_resolve_partially():
    text = """\
defaults: &defaults
  region: eu-west-1
service:
  <<: *defaults
  name: api
"""
    source = Source.from_text(text, "merged.yaml")
    assert source.location(("service", "name")).exact
    location = source.location(("service", "region"))
    assert not location.exact
    assert (location.line, location.column) == (4, 3)
    assert location.unresolved == ["region"]


def test_application_tags_are_accepted():
    source = Source.from_text("VpcId: !Ref Vpc\nName: !Sub '${Env}-web'\n", "template.yml")
    assert (source.location(("Name",)).line, source.location(("Name",)).column) == (2, 7)


def test_empty_document():
    source = Source.from_text("", "empty.yaml")
    assert source.root is None
    location = source.location(())
    assert (location.line, location.column, location.exact) == (1, 1, True)
    assert not source.location(("a",)).exact


def test_locations_are_stable_across_reparse():
    paths = [("spec", "selector", "app"), ("metadata", "name"), ("kind",)]
    first = locate_all(Source.from_text(DOCUMENT, "a.yaml"), paths)
    second = locate_all(Source.from_text(DOCUMENT, "a.yaml"), paths)
    assert first == second
    assert [loc.line for loc in first] == [1, 3, 9]


def test_source_reads_file(tmp_path):
    path = tmp_path / "doc.yaml"
    path.write_text(DOCUMENT, encoding="utf-8")
    source = Source(path)
    assert source.file == str(path)
    assert source.location(("metadata", "name")).line == 3


def test_missing_file_raises_read_error(tmp_path):
    with pytest.raises(DocumentReadError):
        Source(tmp_path / "missing.yaml")


def test_size_limit(tmp_path):
    path = tmp_path / "big.yaml"
    path.write_text("a: " + "x" * 2048 + "\n", encoding="utf-8")
    with pytest.raises(DocumentReadError, match="larger than 1 KB"):
        Source(path, max_kb=1)


def test_invalid_yaml_raises_parse_error():
    with pytest.raises(DocumentParseError) as excinfo:
        Source.from_text("a: b: c\n", "broken.yaml")
    assert excinfo.value.source == "broken.yaml"
    assert "line" in excinfo.value.message
