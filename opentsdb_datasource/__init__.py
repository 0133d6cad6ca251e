"""
OpenTSDB datasource package.

Translates dashboard panel queries into OpenTSDB HTTP API requests, matches
the returned series back to their targets, serves metric and tag
autocompletion, and aggregates dashboard annotations.
"""

from .__version__ import __version__

__all__ = ["__version__"]
