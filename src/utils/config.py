"""Workflow configuration read from the environment."""

import os


class WorkflowConfig:
    """Tunables for scheduling, arbitration and notifications."""

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))
    NOTIFICATION_CHANNEL = os.environ.get("NOTIFICATION_CHANNEL", "in_app").lower()
    NOTIFICATIONS_ENABLED = os.environ.get("NOTIFICATIONS_ENABLED", "true").lower() == "true"

    @classmethod
    def clamp_page(cls, page, limit) -> tuple[int, int]:
        """Normalize 1-based page / limit query values."""
        try:
            page = int(page) if page is not None else 1
        except (TypeError, ValueError):
            page = 1
        try:
            limit = int(limit) if limit is not None else cls.DEFAULT_PAGE_SIZE
        except (TypeError, ValueError):
            limit = cls.DEFAULT_PAGE_SIZE
        page = max(page, 1)
        limit = min(max(limit, 1), cls.MAX_PAGE_SIZE)
        return page, limit
