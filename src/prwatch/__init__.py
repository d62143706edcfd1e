"""Multi-account GitHub pull request watcher."""

__version__ = "0.1.0"
