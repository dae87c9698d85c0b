"""Jira Product Discovery <-> GitLab issue reconciliation service"""

__version__ = "1.0.0"
