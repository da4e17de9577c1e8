# taskhub/schemas/__init__.py
"""Pydantic schemas for Taskhub."""
