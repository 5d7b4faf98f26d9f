"""
Tracker core: targets, extraction rules, fetching and state storage.

This package contains:
- Target, state and cycle result models
- Regex and JSON field extraction rules
- The httpx fetch collaborator
- File and in-memory state stores
- Targets file loading
"""

__version__ = "1.0.0"
