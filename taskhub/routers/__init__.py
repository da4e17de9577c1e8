# taskhub/routers/__init__.py
"""API routers for Taskhub."""
