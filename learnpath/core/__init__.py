"""Core infrastructure: context, logging, middleware, redis, locks, storage."""
