"""Lifecycle analytics engine for Jira flow metrics."""
