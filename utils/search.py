"""
OpenSearch Client Utilities

Builds the async OpenSearch client from configuration (addresses, optional
basic credentials, optional CA certificate) and wraps the three index
operations the jobs need: count, search and delete-by-query. Every call takes
the shared cancellation token.
"""

import logging
import ssl
from typing import Any

from opensearchpy import AsyncOpenSearch

from utils.cancellation import CancellationToken
from utils.config import OpenSearchConfig
from utils.errors import ConfigError
from utils.schemas import TimeWindow

logger = logging.getLogger(__name__)


def build_ssl_context(cert_path: str) -> ssl.SSLContext:
    """
    Create an SSL context trusting the given CA certificate.

    Raises:
        ConfigError: If the certificate cannot be read or parsed
    """
    try:
        return ssl.create_default_context(cafile=cert_path)
    except FileNotFoundError as e:
        raise ConfigError(f"failed to read certificate {cert_path}: {e}") from e
    except (ssl.SSLError, OSError) as e:
        raise ConfigError(f"failed to parse certificate {cert_path}: {e}") from e


def create_client(config: OpenSearchConfig, timeout: float = 60.0) -> AsyncOpenSearch:
    """
    Create an AsyncOpenSearch client.

    Args:
        config: Cluster connection parameters
        timeout: Per-request deadline in seconds

    Returns:
        Configured client (connections are opened lazily)

    Raises:
        ConfigError: If the CA certificate is unusable
    """
    kwargs: dict[str, Any] = {
        "hosts": list(config.addresses),
        "timeout": timeout,
    }

    if config.username:
        kwargs["http_auth"] = (config.username, config.password)

    if config.cert_path:
        kwargs["ssl_context"] = build_ssl_context(config.cert_path)
        kwargs["verify_certs"] = True

    logger.info(
        "Initializing OpenSearch client",
        extra={
            "addresses": list(config.addresses),
            "tls_ca": bool(config.cert_path),
            "basic_auth": bool(config.username),
        },
    )
    return AsyncOpenSearch(**kwargs)


class SearchIndex:
    """Index operations used by the backup and cleanup jobs."""

    def __init__(self, client: AsyncOpenSearch, timestamp_field: str = "@timestamp") -> None:
        self.client = client
        self.timestamp_field = timestamp_field

    async def count(self, index: str, window: TimeWindow, token: CancellationToken) -> int:
        """Exact number of documents inside the window."""
        body = {"query": window.range_query(self.timestamp_field)}
        response = await token.run(self.client.count(index=index, body=body))
        return int(response["count"])

    async def search(
        self, index: str, window: TimeWindow, size: int, token: CancellationToken
    ) -> dict[str, Any]:
        """Documents inside the window, oldest first, in a single page of `size` hits."""
        body = {
            "query": window.range_query(self.timestamp_field),
            "sort": [{self.timestamp_field: {"order": "asc"}}],
            "size": size,
        }
        return await token.run(self.client.search(index=index, body=body))

    async def delete_older_than(
        self, index: str, retention_days: int, token: CancellationToken
    ) -> int:
        """Delete documents older than now-retention_days (day granularity)."""
        body = {"query": retention_query(self.timestamp_field, retention_days)}
        response = await token.run(self.client.delete_by_query(index=index, body=body))
        return int(response.get("deleted", 0))

    async def close(self) -> None:
        await self.client.close()


def retention_query(field: str, retention_days: int) -> dict[str, Any]:
    """Range predicate matching everything up to the start of (today - retention_days)."""
    return {"range": {field: {"lte": f"now-{retention_days}d/d"}}}
