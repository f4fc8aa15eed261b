"""Common type definitions for lakeplan.

This module provides type aliases for commonly used types across the application.
"""

from typing import Any

# JSON-compatible types for database fields
type JSONDict = dict[str, Any]

# Plugin-specific task options, passed through untouched
type TaskOptions = dict[str, Any]

# Metric plugin name -> its options document (None means "enabled, no options")
type MetricSettings = dict[str, JSONDict | None]
