"""
FastAPI status API for the TokenWatch change tracker.

This module provides a REST API for:
- Listing tracked targets and their stored values
- Triggering a detection cycle on demand
- Resetting a target's stored value
- API key-based authentication and rate limiting
"""
