# taskhub/__init__.py
"""Taskhub - task management service with role-based visibility."""

__version__ = "1.0.0"
__author__ = "Task Manager Team"
