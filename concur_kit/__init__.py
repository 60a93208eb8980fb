"""Thread-based concurrency patterns: pools, queues, hashing, breakers, limiters, actors and pipelines."""

__version__ = "0.1.0"