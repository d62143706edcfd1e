"""Tests for repository archived-status resolution."""

import sys
from pathlib import Path
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prwatch.errors import AuthenticationError, TransportError
from prwatch.repo_metadata import RepositoryMetadataResolver


def test_is_archived_reads_archived_flag():
    """Verify the archived flag of the repository payload is returned."""
    client = Mock()
    client.get_repository.return_value = {"archived": True}

    assert RepositoryMetadataResolver(client).is_archived("acme", "legacy") is True
    client.get_repository.assert_called_once_with("acme", "legacy")


def test_is_archived_memoizes_case_insensitively():
    """Verify repeated lookups of the same repository make a single request."""
    client = Mock()
    client.get_repository.return_value = {"archived": False}
    resolver = RepositoryMetadataResolver(client)

    assert resolver.is_archived("acme", "api") is False
    assert resolver.is_archived("ACME", "Api") is False

    assert client.get_repository.call_count == 1


def test_is_archived_fails_open_on_errors():
    """Verify lookup failures are treated as not archived."""
    client = Mock()
    client.get_repository.side_effect = [
        TransportError("not found", status_code=404),
        AuthenticationError("bad token"),
    ]
    resolver = RepositoryMetadataResolver(client)

    assert resolver.is_archived("acme", "gone") is False
    assert resolver.is_archived("acme", "private") is False


def test_is_archived_fails_open_on_missing_flag():
    """Verify a payload without a boolean archived field is treated as not archived."""
    client = Mock()
    client.get_repository.return_value = {"archived": "yes"}

    assert RepositoryMetadataResolver(client).is_archived("acme", "odd") is False
