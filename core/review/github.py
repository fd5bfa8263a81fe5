"""GitHub pull-request metadata: URL parsing, REST fetch and prompt formatting."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

PR_URL_PATTERN = re.compile(r"https://github\.com/([^/\s]+)/([^/\s]+)/pull/(\d+)")


class GitHubError(Exception):
    """GitHub API returned a non-success status for the pull request."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        super().__init__(f"GitHub API error: {status_code} {reason}".rstrip())
        self.status_code = status_code


@dataclass
class PRInfo:
    owner: str
    repo: str
    number: int

    @property
    def repo_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}.git"

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


def parse_pr_url(text: str) -> PRInfo | None:
    """Find the first GitHub pull-request URL in text."""
    match = PR_URL_PATTERN.search(text)
    if not match:
        return None
    owner, repo, number = match.groups()
    return PRInfo(owner=owner, repo=repo, number=int(number))


# ==================== Payload models ====================


class _GitHubModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GitHubUser(_GitHubModel):
    login: str


class GitHubRepo(_GitHubModel):
    full_name: str
    clone_url: str | None = None


class GitRef(_GitHubModel):
    ref: str
    sha: str
    repo: GitHubRepo | None = None


class ChangedFile(_GitHubModel):
    filename: str
    status: str
    additions: int = 0
    deletions: int = 0


class CommitDetail(_GitHubModel):
    message: str = ""


class PRCommit(_GitHubModel):
    sha: str
    commit: CommitDetail = Field(default_factory=CommitDetail)


class PullRequest(_GitHubModel):
    title: str
    body: str | None = None
    state: str
    user: GitHubUser
    base: GitRef
    head: GitRef
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    commits: int = 0
    files: list[ChangedFile] | None = None
    commits_data: list[PRCommit] | None = None

    @property
    def is_fork(self) -> bool:
        return (
            self.head.repo is not None
            and self.base.repo is not None
            and self.head.repo.full_name != self.base.repo.full_name
        )


# ==================== Client ====================


class GitHubClient:
    """Async GitHub REST client (pull requests only)."""

    def __init__(self, token: str | None = None, api_url: str = "https://api.github.com", transport: httpx.AsyncBaseTransport | None = None):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": "sandcastle-pr-review"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    async def fetch_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        """Fetch PR metadata, then its files and commits.

        Files and commits are best effort; only the PR fetch itself must succeed.
        """
        base = f"{self.api_url}/repos/{owner}/{repo}/pulls/{number}"
        async with httpx.AsyncClient(headers=self._headers(), timeout=30, transport=self._transport) as client:
            response = await client.get(base)
            if response.status_code >= 400:
                raise GitHubError(response.status_code, response.reason_phrase)
            pr = PullRequest.model_validate(response.json())

            files = await client.get(f"{base}/files")
            if files.is_success:
                pr.files = [ChangedFile.model_validate(f) for f in files.json()]
            else:
                logger.warning("Could not fetch files for %s/%s#%s: %s", owner, repo, number, files.status_code)

            commits = await client.get(f"{base}/commits")
            if commits.is_success:
                pr.commits_data = [PRCommit.model_validate(c) for c in commits.json()]
            else:
                logger.warning("Could not fetch commits for %s/%s#%s: %s", owner, repo, number, commits.status_code)
        return pr


def format_pr_metadata(pr: PullRequest, info: PRInfo) -> str:
    head_repo = pr.head.repo.full_name if pr.head.repo else "Unknown (deleted fork)"
    base_repo = pr.base.repo.full_name if pr.base.repo else f"{info.owner}/{info.repo}"
    lines = [
        "PR METADATA FROM GITHUB:",
        f"- Title: {pr.title}",
        f"- State: {pr.state}",
        f"- Author: {pr.user.login}",
        f"- Base repository: {base_repo}",
        f"- Base branch: {pr.base.ref} ({pr.base.sha})",
        f"- Head repository: {head_repo}",
        f"- Head branch: {pr.head.ref} ({pr.head.sha})",
        f"- Changes: +{pr.additions} -{pr.deletions} in {pr.changed_files} files",
        f"- Commits: {pr.commits}",
    ]
    if pr.is_fork:
        lines.append("- NOTE: This PR is from a fork")

    lines += ["", "CHANGED FILES:"]
    if pr.files:
        lines += [f"- {f.filename} ({f.status}, +{f.additions} -{f.deletions})" for f in pr.files]
    else:
        lines.append("No file data available")

    lines += ["", "COMMITS:"]
    if pr.commits_data:
        lines += [f"- {c.sha[:7]}: {c.commit.message.splitlines()[0] if c.commit.message else ''}" for c in pr.commits_data]
    else:
        lines.append("No commit data available")

    lines += ["", "DESCRIPTION:", pr.body or "No description provided"]
    return "\n".join(lines) + "\n"
