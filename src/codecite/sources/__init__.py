"""Source hosts: where repository content comes from."""

from codecite.config import Config
from codecite.sources.base import ChangedPath, SourceFile, SourceHost
from codecite.sources.github import GitHubSourceHost
from codecite.sources.ignore import IgnoreRules, is_binary_path
from codecite.sources.local import LocalSourceHost


def create_sources(config: Config) -> dict[str, SourceHost]:
    """Map every configured repository to the host that serves it.

    Local checkouts win over GitHub when a name is configured for both.
    """
    sources: dict[str, SourceHost] = {}
    if config.github_repos:
        github = GitHubSourceHost(token=config.github_token, api_url=config.github_api_url)
        for repo in config.github_repos:
            sources[repo] = github
    if config.repo_roots:
        local = LocalSourceHost(config.repo_roots)
        for repo in config.repo_roots:
            sources[repo] = local
    return sources


__all__ = [
    "ChangedPath",
    "GitHubSourceHost",
    "IgnoreRules",
    "LocalSourceHost",
    "SourceFile",
    "SourceHost",
    "create_sources",
    "is_binary_path",
]
