"""Utility modules."""

from traffic_api.utils.normalization import (
    normalize_email,
    normalize_name,
)
from traffic_api.utils.pagination import (
    PaginationParams,
    page_count,
)

__all__ = [
    # Normalization
    "normalize_email",
    "normalize_name",
    # Pagination
    "PaginationParams",
    "page_count",
]
