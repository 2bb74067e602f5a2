"""
Cleanup Job - Retention Enforcement via Delete-by-Query
"""

import logging

from utils.cancellation import CancellationToken
from utils.config import CleanupJob
from utils.errors import CleanupError, RunCancelled
from utils.schemas import CleanupResult
from utils.search import SearchIndex

logger = logging.getLogger(__name__)


class CleanupService:
    """Deletes old records from indices."""

    def __init__(self, search: SearchIndex) -> None:
        self.search = search

    async def run(self, job: CleanupJob, token: CancellationToken) -> CleanupResult:
        """
        Delete documents older than job.retention_days from job.index_name.

        Raises:
            CleanupError: If the delete-by-query request fails
            RunCancelled: If shutdown was requested
        """
        logger.info(
            "Starting cleanup for index %s (retention: %d days)",
            job.index_name, job.retention_days,
            extra={"index": job.index_name, "retention_days": job.retention_days},
        )

        try:
            deleted = await self.search.delete_older_than(
                job.index_name, job.retention_days, token
            )
        except RunCancelled:
            raise
        except Exception as e:
            raise CleanupError(f"delete by query failed for {job.index_name}: {e}") from e

        logger.info(
            "Cleanup completed for %s: deleted %d documents",
            job.index_name, deleted,
            extra={"index": job.index_name, "deleted": deleted},
        )
        return CleanupResult(
            index_name=job.index_name,
            retention_days=job.retention_days,
            deleted=deleted,
        )
