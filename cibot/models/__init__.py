"""
Models package.

Import all models here so Alembic can discover them.
"""

from cibot.models.pull_request_metadata import PullRequestMetadata

__all__ = [
    "PullRequestMetadata",
]
