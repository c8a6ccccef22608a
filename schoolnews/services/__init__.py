"""Content store construction."""

import httpx

from schoolnews.config import Config
from schoolnews.database import Database
from schoolnews.services.rest_store import RestContentStore
from schoolnews.services.retry import RetryPolicy, with_retry
from schoolnews.services.sql_store import SqlContentStore
from schoolnews.services.store import ContentStore

__all__ = [
    "ContentStore",
    "RestContentStore",
    "RetryPolicy",
    "SqlContentStore",
    "build_store",
    "with_retry",
]


async def build_store(config: Config) -> ContentStore:
    """Create the configured store; the caller owns it and must close() it."""
    if config.backend == "rest":
        client = httpx.AsyncClient(
            base_url=config.supabase_url.rstrip("/"),
            timeout=httpx.Timeout(config.http_timeout),
        )
        return RestContentStore(
            client,
            api_key=config.supabase_key,
            retry_policy=RetryPolicy(
                max_retries=config.retry_max_attempts,
                base_delay=config.retry_base_delay_ms,
                attempt_timeout=config.retry_attempt_timeout,
            ),
            service_key=config.supabase_service_key,
        )

    database = Database(config.database_url)
    await database.init()
    store = SqlContentStore(database)
    await store.init_defaults()
    return store
