"""Pull-request review flow.

Fetch PR metadata, provision a throwaway sandbox, clone the head branch in the
background, wait for the clone through the poller, check out the head commit
and let the capability review the change. The sandbox is always deleted.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
import time
from typing import Protocol

from config.schema import AppSettings
from core.generation.capability import GenerationCapability
from core.generation.messages import UserText
from core.generation.prompts import REVIEW_REQUEST, review_prompt
from core.generation.tools import build_sandbox_tools
from core.review.github import GitHubClient, parse_pr_url
from sandbox.base import SandboxHandle
from sandbox.errors import SandboxError
from sandbox.poller import await_terminal
from sandbox.provider import SandboxProvider, SandboxSpec, new_sandbox_id

logger = logging.getLogger(__name__)


class ReviewSink(Protocol):
    def emit_log(self, text: str) -> None: ...

    def emit_terminal(self, content: str, *, error: bool = False) -> None: ...

    def close(self) -> None: ...


class ReviewRunner:
    def __init__(
        self,
        provider: SandboxProvider,
        capability: GenerationCapability,
        github: GitHubClient,
        settings: AppSettings,
    ):
        self.provider = provider
        self.capability = capability
        self.github = github
        self.settings = settings

    async def run(self, pr_url: str, sink: ReviewSink) -> None:
        review = self.settings.review
        info = parse_pr_url(pr_url)
        if info is None:
            sink.emit_log("❌ Invalid input: Invalid GitHub PR URL format")
            sink.emit_terminal("Invalid GitHub PR URL format", error=True)
            sink.close()
            return

        sandbox_name = new_sandbox_id("pr-analysis")
        handle: SandboxHandle | None = None
        outcome, failed = "Review interrupted", True
        try:
            sink.emit_log(f"🔍 Analyzing PR: {pr_url}")
            sink.emit_log(f"📋 PR Info: {info.slug}")
            sink.emit_log("🌐 Fetching PR data from GitHub API...")
            pr = await self.github.fetch_pull_request(info.owner, info.repo, info.number)
            sink.emit_log(f"✅ PR Data Retrieved: {pr.title} by {pr.user.login}")
            sink.emit_log(f"   Changes: +{pr.additions} -{pr.deletions} in {pr.changed_files} files")

            repository_url = info.repo_url
            if pr.head.repo is not None and pr.head.repo.clone_url:
                repository_url = pr.head.repo.clone_url
                if pr.is_fork:
                    sink.emit_log(f"   Using fork repository: {pr.head.repo.full_name}")

            envs = {
                "REPOSITORY_URL": repository_url,
                "REPOSITORY_BRANCH": pr.head.ref,
                "SHELL": "/bin/bash",
            }
            if review.github_token:
                envs["GITHUB_TOKEN"] = review.github_token

            sink.emit_log(f"🏗️ Creating sandbox environment with image={review.image}, branch={pr.head.ref}...")
            handle = await self.provider.create(
                SandboxSpec(
                    name=sandbox_name,
                    image=review.image,
                    memory_mb=self.settings.sandbox.memory_mb,
                    envs=envs,
                    labels={self.settings.sandbox.label: "true"},
                )
            )
            await self.provider.wait_ready(handle, timeout=self.settings.sandbox.create_timeout)
            sink.emit_log(f"✅ Sandbox created: {sandbox_name}")

            sink.emit_log("📥 Cloning repository...")
            # Clone target is relative to its parent so local sandboxes stay inside their root.
            parent, target = posixpath.split(review.repository_dir.rstrip("/"))
            await handle.exec(
                review.clone_process,
                f"git clone --branch {shlex.quote(pr.head.ref)} {shlex.quote(repository_url)} {shlex.quote(target)}",
                working_dir=parent or "/",
                env=envs,
                wait=False,
            )
            poller = self.settings.poller

            def _on_retry(attempt: int, error: Exception | None) -> None:
                if error is not None:
                    sink.emit_log("⚠️ Warning: retrying to get clone process...")

            clone = await await_terminal(
                handle,
                review.clone_process,
                max_attempts=poller.max_attempts,
                poll_interval=poller.poll_interval,
                max_wait=poller.max_wait,
                jitter=poller.jitter,
                on_retry=_on_retry,
            )
            if clone.status != "completed":
                raise SandboxError(f"Repository clone failed: {clone.logs}")
            sink.emit_log("✅ Repository cloned")

            if pr.head.sha:
                sink.emit_log(f"🔄 Checking out commit: {pr.head.sha[:7]}")
                checkout = await handle.exec(
                    f"checkout-{int(time.time() * 1000)}",
                    f"git checkout {shlex.quote(pr.head.sha)}",
                    working_dir=review.repository_dir,
                    wait=True,
                )
                sink.emit_log(f"✅ Checkout result: {checkout.logs.strip() or checkout.status}")

            tools = build_sandbox_tools(handle, self.settings.generation, app_dir=review.repository_dir)
            sink.emit_log("🧠 Starting PR analysis...")
            async for step in self.capability.steps(
                review_prompt(pr, info, review.repository_dir),
                [UserText(text=REVIEW_REQUEST.format(repository_dir=review.repository_dir))],
                tools,
                self.settings.generation.max_steps,
            ):
                if step.text:
                    sink.emit_log(step.text)
                for call in step.tool_calls:
                    sink.emit_log(f"Calling tool {call.name}...")

            outcome, failed = "🎉 Analysis complete!", False
        except Exception as e:
            logger.exception("PR review failed for %s", pr_url)
            message = getattr(e, "message", None) or str(e)
            sink.emit_log(f"❌ Error: {message}")
            outcome = message
        finally:
            if handle is not None:
                sink.emit_log("🧹 Cleaning up sandbox...")
                try:
                    await self.provider.delete(sandbox_name)
                except Exception as e:
                    logger.warning("Failed to delete review sandbox %s: %s", sandbox_name, e)
                    sink.emit_log(f"⚠️ Failed to cleanup sandbox: {e}")
            sink.emit_terminal(outcome, error=failed)
            sink.close()
