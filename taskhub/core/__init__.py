# taskhub/core/__init__.py
"""Core modules for Taskhub."""
