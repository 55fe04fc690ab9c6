"""VOD archive caching reverse-proxy."""
