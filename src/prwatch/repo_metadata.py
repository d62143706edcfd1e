"""Repository archived-status lookups for the REST search path."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, Tuple

from .errors import PRWatchError

if TYPE_CHECKING:
    from .github_client import GitHubClient

logger = logging.getLogger(__name__)


class RepositoryMetadataResolver:
    """Resolve whether repositories are archived, failing open.

    One resolver is created per REST fetch; answers are memoized for its
    lifetime so repeated repositories cost a single request.
    """

    def __init__(self, client: "GitHubClient") -> None:
        self._client = client
        self._lock = threading.Lock()
        self._archived: Dict[Tuple[str, str], bool] = {}

    def is_archived(self, owner: str, repo: str) -> bool:
        key = (owner.lower(), repo.lower())
        with self._lock:
            if key in self._archived:
                return self._archived[key]

        archived = self._lookup(owner, repo)

        with self._lock:
            self._archived.setdefault(key, archived)
            return self._archived[key]

    def _lookup(self, owner: str, repo: str) -> bool:
        try:
            payload = self._client.get_repository(owner, repo)
        except PRWatchError as exc:
            logger.debug(
                "Repository lookup failed; treating as not archived",
                extra={"repository": f"{owner}/{repo}", "error": str(exc)},
            )
            return False

        archived = payload.get("archived")
        if not isinstance(archived, bool):
            logger.debug(
                "Repository payload has no boolean 'archived' field",
                extra={"repository": f"{owner}/{repo}"},
            )
            return False

        return archived
