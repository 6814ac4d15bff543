"""
Pagination classes for chat API.

Message history pages count from the newest message: page 1 holds the most
recent messages. Each page is returned in chronological order.
"""

from chat.constants import MESSAGE_CONFIG
from core.pagination import PageLimitPagination


class MessagePagination(PageLimitPagination):
    """Message history pages (?page=, ?limit=)."""

    page_size = MESSAGE_CONFIG.HISTORY_DEFAULT_PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.HISTORY_MAX_PAGE_SIZE
    results_key = "messages"
