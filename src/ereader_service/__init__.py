"""
E-Reader Conversion Service package.

This module provides a FastAPI application that stores uploads and turns web
pages into e-reader documents with `percollate`, tracking each conversion as
an asynchronous job that clients poll at `/api/job/{id}`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
