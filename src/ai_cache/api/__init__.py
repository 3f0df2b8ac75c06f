"""FastAPI application exposing the cache and rate limiter over HTTP."""
