"""
API module for the REST API implementation.
"""

from .rest_api import AthenaRestAPI

__all__ = [
    "AthenaRestAPI",
]
