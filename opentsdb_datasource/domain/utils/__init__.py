"""
Shared utilities for the OpenTSDB datasource.

Modules
-------
labels
    Alias template expansion and group-by series labels
intersect
    Linear intersection of ascending sequences
timestamps
    Range value parsing and OpenTSDB millisecond time conversion
"""

__all__ = []
