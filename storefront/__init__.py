"""Storefront offer scheduling package.

Having this file ensures the 'storefront' directory is recognized as a
standard Python package during test discovery and packaging.
"""

__all__: list[str] = []
