from .base import DrawData, ResultDataSource
from .http_api import HttpJsonDataSource

__all__ = [
    "DrawData",
    "ResultDataSource",
    "HttpJsonDataSource",
]
