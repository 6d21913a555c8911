"""
JSON routes exposing the analytics context to a UI shell.
"""

from .dashboard import create_dashboard_router

__all__ = ["create_dashboard_router"]
