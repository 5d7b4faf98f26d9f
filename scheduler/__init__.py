"""
Scheduler package: change detection and notification.

This package contains:
- Change detection engine (one cycle per target)
- Notification sinks and dispatcher
- Interval scheduler for many targets
"""

__version__ = "1.0.0"
