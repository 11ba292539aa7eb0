"""Legacy design document migration."""

from .legacy import LegacyMigrator, classify_title, title_confidence

__all__ = ["LegacyMigrator", "classify_title", "title_confidence"]
