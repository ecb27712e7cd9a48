"""repostats - package popularity statistics from repository access logs."""

__version__ = "0.1.0"
