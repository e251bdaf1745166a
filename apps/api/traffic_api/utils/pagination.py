"""Pagination utilities for list endpoints."""

from dataclasses import dataclass


@dataclass
class PaginationParams:
    """Pagination parameters from query string."""
    page: int
    per_page: int
    
    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def page_count(total: int, per_page: int) -> int:
    """Number of pages needed for total items (ceil division)."""
    if per_page <= 0:
        return 0
    return (total + per_page - 1) // per_page
