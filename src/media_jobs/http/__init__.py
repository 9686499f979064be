"""HTTP helpers shared by provider adapters and the blob store."""

from media_jobs.http.fetcher import FetchResult, HttpFetcher, build_async_client

__all__ = ["FetchResult", "HttpFetcher", "build_async_client"]
