"""Database models package."""

from asset_tracker.models.asset import Asset

__all__ = ["Asset"]
