"""Pull-request review requests as background runs."""

from __future__ import annotations

import logging

from backend.web.services.generation_service import BackgroundRuns
from backend.web.services.stream_channel import StreamChannel
from core.review.runner import ReviewRunner
from sandbox.provider import new_sandbox_id

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, runner: ReviewRunner):
        self.runner = runner
        self.runs = BackgroundRuns()

    def start(self, pr_url: str) -> StreamChannel:
        channel = StreamChannel()
        run_id = new_sandbox_id("review")
        logger.info("Starting PR review %s for %s", run_id, pr_url)
        self.runs.spawn(run_id, self.runner.run(pr_url, channel))
        return channel

    async def shutdown(self, grace: float = 5.0) -> None:
        await self.runs.shutdown(grace)
