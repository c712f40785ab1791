from backend_indexer.cache.job_cache import DEFAULT_TTL_SEC, JobRegistryCache, cache_key

__all__ = ["DEFAULT_TTL_SEC", "JobRegistryCache", "cache_key"]
