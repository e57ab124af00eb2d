"""
Tests for the release index model.
"""

import pytest

from govm.core.exceptions import ParseError
from govm.version.releases import (
    is_go_version,
    normalize_version,
    parse_index,
    parse_release,
    sort_versions,
)

from conftest import index_entry


class TestVersions:
    def test_normalize(self):
        assert normalize_version("go1.22.3") == "1.22.3"
        assert normalize_version(" 1.22.3 ") == "1.22.3"
        assert normalize_version("golang") == "golang"

    def test_is_go_version(self):
        assert is_go_version("1.22.3")
        assert is_go_version("go1.23rc1")
        assert is_go_version("1.21beta2")
        assert not is_go_version("stable")

    def test_precedence(self):
        versions = ["1.21.9", "1.22rc1", "1.22.0", "1.22rc2", "1.9"]
        assert sort_versions(versions) == ["1.22.0", "1.22rc2", "1.22rc1", "1.21.9", "1.9"]

    def test_oldest_first(self):
        assert sort_versions(["1.22.3", "1.21.10"], newest_first=False) == [
            "1.21.10",
            "1.22.3",
        ]

    def test_unparseable_sort_last(self):
        assert sort_versions(["tip", "1.22.3"]) == ["1.22.3", "tip"]


class TestParseIndex:
    def test_parse(self):
        releases = parse_index(
            [
                index_entry("1.21.10", b"a"),
                index_entry("1.22rc1", b"b", stable=False),
                index_entry("1.22.3", b"c"),
            ]
        )

        assert [r.version for r in releases] == ["1.22.3", "1.22rc1", "1.21.10"]
        assert releases[1].stable is False
        artifact = releases[0].find_artifact("linux", "amd64")
        assert artifact.filename == "go1.22.3.linux-amd64.tar.gz"
        assert artifact.has_checksum

    def test_duplicates_keep_first(self):
        first = index_entry("1.22.3", b"first")
        second = index_entry("1.22.3", b"second")
        releases = parse_index([first, second])
        assert len(releases) == 1
        assert releases[0].files[0].size == len(b"first")

    def test_artifact_without_checksum_not_selectable(self):
        release = parse_release(index_entry("1.22.3", b"a", sha256=""))
        assert release.find_artifact("linux", "amd64") is None
        assert release.find_artifact("windows", "amd64") is None

    def test_source_kind(self):
        release = parse_release(index_entry("1.22.3", b"a"))
        assert release.find_artifact("", "", "source").filename == "go1.22.3.src.tar.gz"

    @pytest.mark.parametrize(
        "document",
        [
            {"version": "go1.22.3"},
            [],
            ["go1.22.3"],
            [{"stable": True}],
            [{"version": "go1.22.3", "files": {}}],
            [{"version": "go1.22.3", "files": [{"filename": "../evil"}]}],
            [{"version": "not a version"}],
        ],
    )
    def test_malformed(self, document):
        with pytest.raises(ParseError):
            parse_index(document)

    def test_to_dict_round_trip_through_parser(self):
        release = parse_release(index_entry("1.22.3", b"a"))
        assert parse_release(release.to_dict()) == release
