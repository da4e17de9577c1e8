# taskhub/services/__init__.py
"""Domain services for Taskhub."""
