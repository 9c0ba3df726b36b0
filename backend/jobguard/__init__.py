"""JobGuard: Redis-backed rate limiting and abuse detection for the job marketplace API."""

__version__ = "1.0.0"
