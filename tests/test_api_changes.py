"""Tests for API URL change detection in patches."""

from __future__ import annotations

import pytest

from shadowgraph.analysis import classify_url_change, detect_api_url_changes
from shadowgraph.analysis.api_changes import extract_urls
from shadowgraph.models.report import ChangedFile
from shadowgraph.models.types import UrlChangeType

CLIENT_PATH = "user-service/src/main/java/com/acme/user/UserClient.java"


def _changed(patch: str, filename: str = CLIENT_PATH) -> ChangedFile:
    return ChangedFile.from_path(filename, additions=1, deletions=1, patch=patch)


class TestClassify:
    """Tests for classify_url_change."""

    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            ("/api/users/{id}", "/api/members/{id}", UrlChangeType.PATH_SEGMENT_CHANGE),
            ("/api/users/", "/api/v2/users/", UrlChangeType.PATH_STRUCTURE_CHANGE),
            ("/api/users/{id}", "/v2/people/{id}", UrlChangeType.PATH_STRUCTURE_CHANGE),
            ("/a", "/b", UrlChangeType.PATH_STRUCTURE_CHANGE),
            ("users", "members", UrlChangeType.COMPLETE_REWRITE),
            ("/api/users", "/api/users", UrlChangeType.MINOR_CHANGE),
        ],
    )
    def test_classification(self, old: str, new: str, expected: UrlChangeType) -> None:
        """Change type depends on how many segments moved."""
        assert classify_url_change(old, new) == expected


class TestExtractUrls:
    """Tests for URL literal extraction."""

    def test_api_literal(self) -> None:
        """Quoted api paths are found."""
        assert extract_urls('String url = "/api/users/" + id;') == ["/api/users/"]

    def test_mapping_annotation(self) -> None:
        """Mapping annotations are found."""
        assert extract_urls('@GetMapping("/orders/{id}")') == ["/orders/{id}"]

    def test_no_url(self) -> None:
        """Plain code yields nothing."""
        assert extract_urls("return userRepository.findById(id);") == []


class TestDetect:
    """Tests for detect_api_url_changes."""

    def test_rewritten_url(self) -> None:
        """A removed and added URL literal pair is one change."""
        patch = (
            '@@ -10,2 +10,2 @@\n'
            '-        String url = "/api/users/" + id;\n'
            '+        String url = "/api/v2/users/" + id;\n'
        )
        changes = detect_api_url_changes([_changed(patch)])

        assert len(changes) == 1
        change = changes[0]
        assert change.old_url == "/api/users/"
        assert change.new_url == "/api/v2/users/"
        assert change.class_name == "UserClient"
        assert change.file == CLIENT_PATH
        assert change.line_number == 3
        assert change.change_type == UrlChangeType.PATH_STRUCTURE_CHANGE
        assert change.description == (
            "API URL changed in UserClient: '/api/users/' -> '/api/v2/users/'"
        )

    def test_moved_line_not_a_change(self) -> None:
        """The same URL removed and re-added is ignored."""
        patch = '-    String url = "/api/users";\n+    String url = "/api/users";\n'
        assert detect_api_url_changes([_changed(patch)]) == []

    def test_test_sources_skipped(self) -> None:
        """Patches under src/test are not inspected."""
        patch = '-    get("/api/users");\n+    get("/api/people");\n'
        changed = _changed(patch, "user-service/src/test/java/com/acme/user/UserClientTest.java")
        assert detect_api_url_changes([changed]) == []

    def test_no_patch(self) -> None:
        """Files without a patch contribute nothing."""
        assert detect_api_url_changes([ChangedFile(class_name="com.acme.X")]) == []
