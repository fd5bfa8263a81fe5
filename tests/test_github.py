import asyncio

import pytest

from core.review.github import GitHubClient, GitHubError, PRInfo, format_pr_metadata, parse_pr_url
from fakes.github import github_transport, pr_payload


class TestParsePrUrl:
    def test_finds_url_inside_text(self):
        info = parse_pr_url("please review https://github.com/acme/site/pull/7 thanks")
        assert info == PRInfo(owner="acme", repo="site", number=7)
        assert info.repo_url == "https://github.com/acme/site.git"
        assert info.slug == "acme/site#7"

    @pytest.mark.parametrize(
        "text",
        ["", "https://github.com/acme/site/issues/7", "https://gitlab.com/acme/site/pull/7", "acme/site#7"],
    )
    def test_rejects_non_pr_urls(self, text):
        assert parse_pr_url(text) is None


class TestClient:
    def test_fetch_pull_request_with_files_and_commits(self):
        requests = []
        client = GitHubClient(token="secret", transport=github_transport(requests=requests))

        pr = asyncio.run(client.fetch_pull_request("acme", "site", 7))

        assert pr.title == "Add dark mode"
        assert pr.head.sha == "b" * 40
        assert [f.filename for f in pr.files] == ["src/theme.ts", "src/app.ts"]
        assert pr.commits_data[0].commit.message.startswith("Add theme toggle")
        assert requests[0].headers["authorization"] == "token secret"
        assert requests[0].headers["accept"] == "application/vnd.github.v3+json"

    def test_anonymous_client_sends_no_authorization(self):
        requests = []
        client = GitHubClient(transport=github_transport(requests=requests))
        asyncio.run(client.fetch_pull_request("acme", "site", 7))
        assert "authorization" not in requests[0].headers

    def test_pr_fetch_failure_raises(self):
        client = GitHubClient(transport=github_transport(pr_status=404))
        with pytest.raises(GitHubError) as exc_info:
            asyncio.run(client.fetch_pull_request("acme", "site", 7))
        assert exc_info.value.status_code == 404
        assert "404" in str(exc_info.value)

    def test_file_fetch_failure_is_tolerated(self):
        client = GitHubClient(transport=github_transport(files_status=500))
        pr = asyncio.run(client.fetch_pull_request("acme", "site", 7))
        assert pr.files is None
        assert pr.commits_data is not None


class TestFormatMetadata:
    def test_includes_changes_files_and_commits(self):
        client = GitHubClient(transport=github_transport())
        pr = asyncio.run(client.fetch_pull_request("acme", "site", 7))
        text = format_pr_metadata(pr, PRInfo("acme", "site", 7))

        assert "- Title: Add dark mode" in text
        assert "- Changes: +12 -3 in 2 files" in text
        assert "- src/theme.ts (added, +10 -0)" in text
        assert "- ccccccc: Add theme toggle" in text
        assert "Implements a theme toggle." in text
        assert "fork" not in text

    def test_fork_and_missing_data(self):
        from core.review.github import PullRequest

        payload = pr_payload(body=None)
        payload["head"]["repo"] = {"full_name": "someone/site"}
        pr = PullRequest.model_validate(payload)
        text = format_pr_metadata(pr, PRInfo("acme", "site", 7))

        assert "- NOTE: This PR is from a fork" in text
        assert "No file data available" in text
        assert "No commit data available" in text
        assert "No description provided" in text
