"""Utility modules for lakeplan."""
