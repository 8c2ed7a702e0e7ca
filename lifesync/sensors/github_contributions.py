"""
GitHub commits pushed today, two points per new commit
"""

import logging
import random
from typing import Optional

from lifesync.config import GITHUB_POLL_INTERVAL, POINTS_PER_COMMIT
from lifesync.models import GitHubAPIError, GithubContributionsRecord, SensorType
from lifesync.sensors.base import Sensor

logger = logging.getLogger(__name__)

SIMULATED_LAST_COMMIT = ["2h ago", "1h ago", "30 min ago", "15 min ago", "5 min ago", "Now"]


class GithubContributionsSensor(Sensor):
    """
    Polls today's contributions every five minutes.

    A watermark of already-rewarded commits keeps repeated polls from paying
    twice; it only moves forward, so a lower count after midnight scores nothing
    until it climbs past the last rewarded total.
    Without credentials, or when a request fails, the sensor publishes
    simulated display values and never awards points for them.
    """

    sensor_type = SensorType.GITHUB_CONTRIBUTIONS
    tag = "Github"

    def __init__(self, sensor_id, category, channel, github, rng: Optional[random.Random] = None, **kwargs):
        super().__init__(sensor_id, category, channel, **kwargs)
        self.github = github
        self.rng = rng or random.Random()
        self.commits = 0
        self.repos = 0
        self.last_commit = "Never"
        self.commits_processed = 0
        self.is_configured = False
        self.update_count = 0

    async def _on_start(self):
        self.emit_data()
        await self.update()
        self.schedule_every(GITHUB_POLL_INTERVAL, self.update)

    async def update(self):
        self.update_count += 1

        try:
            if not await self.github.is_configured():
                self.is_configured = False
                self.publish_simulated()
                return

            username = await self.github.get_username()
            contributions = await self.github.get_today_contributions(username)
        except GitHubAPIError as e:
            logger.error(f"[Github] Error updating contributions: {e}")
            self.publish_simulated(error=str(e))
            return
        except Exception as e:
            # Any other client failure also falls back to simulated data
            logger.exception("[Github] Unexpected error updating contributions")
            self.publish_simulated(error=str(e) or type(e).__name__)
            return

        self.is_configured = True
        self.commits = contributions.commits
        self.repos = contributions.repos
        self.last_commit = contributions.last_commit
        self.emit_data()
        self.process_commits(self.commits)

    def process_commits(self, commits: int) -> int:
        """Award points for commits above the watermark. Returns the delta."""
        new_commits = commits - self.commits_processed
        if new_commits <= 0:
            return 0

        points = new_commits * POINTS_PER_COMMIT
        logger.info(
            f"[Github] Update #{self.update_count}: {new_commits} new commits = {points} points "
            f"(commits today: {commits})"
        )
        self.commits_processed = commits
        self.award(points)
        return points

    def publish_simulated(self, error: Optional[str] = None):
        """Display-only values; real counters and the watermark are untouched."""
        data = {
            "commits": self.rng.randint(1, 8),
            "repos": self.rng.randint(1, 4),
            "last_commit": self.rng.choice(SIMULATED_LAST_COMMIT),
            "is_configured": False,
            "simulated": True,
        }
        if error:
            data["error"] = error
        self.channel.publish_data(data)

    def display_data(self) -> dict:
        return {
            "commits": self.commits,
            "repos": self.repos,
            "last_commit": self.last_commit,
            "is_configured": self.is_configured,
        }

    def snapshot(self) -> dict:
        return GithubContributionsRecord(
            commits=self.commits,
            repos=self.repos,
            last_commit=self.last_commit,
            commits_processed=self.commits_processed,
            is_configured=self.is_configured,
        ).model_dump()

    def restore(self, record: Optional[dict]):
        if not record:
            return
        restored = GithubContributionsRecord.model_validate(record)
        self.commits = restored.commits
        self.repos = restored.repos
        self.last_commit = restored.last_commit
        self.commits_processed = restored.commits_processed
        self.is_configured = restored.is_configured
