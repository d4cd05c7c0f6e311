"""
HTTP surface for mail-spine (FastAPI).

Usage::

    from mailspine.api import create_app
    app = create_app()
"""

from mailspine.api.app import create_app

__all__ = ["create_app"]
