"""Content-addressed caches for text analyzer results.

Modules:
    content   - ContentCache (LRU + TTL + size bound), with_cache / cached wrappers
    registry  - CacheRegistry holding one cache per analyzer
"""
