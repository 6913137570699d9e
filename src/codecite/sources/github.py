"""Source host over the GitHub REST API."""

import logging
from urllib.parse import quote

import httpx

from codecite.errors import SourceError
from codecite.sources.base import ADDED, MODIFIED, REMOVED, ChangedPath, SourceFile

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


class GitHubSourceHost:
    """Reads trees, blobs and comparisons from GitHub (or GitHub Enterprise)."""

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _get(self, url: str, params: dict | None = None, accept: str | None = None) -> httpx.Response:
        headers = dict(self.headers)
        if accept:
            headers["Accept"] = accept
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(f"{self.api_url}{url}", params=params, headers=headers)
                response.raise_for_status()
                return response
        except httpx.TimeoutException as e:
            raise SourceError(f"GitHub request timed out: {url}") from e
        except httpx.HTTPStatusError as e:
            raise SourceError(
                f"GitHub request failed: {url} (HTTP {e.response.status_code})"
            ) from e
        except httpx.RequestError as e:
            raise SourceError(f"GitHub request error: {url}: {e}") from e

    def resolve_revision(self, repo: str, ref: str | None = None) -> str:
        if ref is None:
            ref = self._get(f"/repos/{repo}").json()["default_branch"]
        return self._get(f"/repos/{repo}/commits/{quote(ref, safe='')}").json()["sha"]

    def list_tree(self, repo: str, revision: str) -> list[SourceFile]:
        data = self._get(f"/repos/{repo}/git/trees/{revision}", params={"recursive": "1"}).json()
        if data.get("truncated"):
            logger.warning("Tree listing for %s@%s was truncated by GitHub", repo, revision)
        return [
            SourceFile(path=entry["path"], size=entry.get("size"))
            for entry in data.get("tree", [])
            if entry.get("type") == "blob"
        ]

    def get_file_content(self, repo: str, path: str, revision: str) -> bytes:
        response = self._get(
            f"/repos/{repo}/contents/{quote(path)}",
            params={"ref": revision},
            accept="application/vnd.github.raw",
        )
        return response.content

    def get_diff(self, repo: str, base: str, head: str) -> list[ChangedPath]:
        data = self._get(f"/repos/{repo}/compare/{base}...{head}").json()
        changes: list[ChangedPath] = []
        for entry in data.get("files", []):
            status = entry.get("status")
            if status == "removed":
                changes.append(ChangedPath(entry["filename"], REMOVED))
            elif status == "renamed":
                if entry.get("previous_filename"):
                    changes.append(ChangedPath(entry["previous_filename"], REMOVED))
                changes.append(ChangedPath(entry["filename"], ADDED))
            elif status == "added":
                changes.append(ChangedPath(entry["filename"], ADDED))
            else:
                changes.append(ChangedPath(entry["filename"], MODIFIED))
        return changes
