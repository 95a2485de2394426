"""Adapters for external systems: the wallabag API client and its sync engine."""
