"""
Page-number pagination rendered inside the API envelope.

Query parameters:
    page: 1-based page number
    limit: Items per page (capped at max_page_size)

Response:
    {
        "success": true,
        "data": {
            "<results_key>": [...],
            "pagination": {"current": 2, "pages": 5, "total": 93, "hasMore": true}
        }
    }
"""

from rest_framework.pagination import PageNumberPagination

from core.responses import success_response


class PageLimitPagination(PageNumberPagination):
    """
    PageNumberPagination using ``limit`` for the page size.

    Subclasses set results_key to name the list inside ``data``.
    """

    page_size = 20
    page_size_query_param = "limit"
    max_page_size = 100
    results_key = "results"

    def get_pagination_meta(self):
        return {
            "current": self.page.number,
            "pages": self.page.paginator.num_pages,
            "total": self.page.paginator.count,
            "hasMore": self.page.has_next(),
        }

    def get_paginated_response(self, data):
        return success_response(
            {self.results_key: data, "pagination": self.get_pagination_meta()}
        )

    def get_paginated_response_schema(self, schema):
        return {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                "data": {
                    "type": "object",
                    "properties": {
                        self.results_key: schema,
                        "pagination": {
                            "type": "object",
                            "properties": {
                                "current": {"type": "integer"},
                                "pages": {"type": "integer"},
                                "total": {"type": "integer"},
                                "hasMore": {"type": "boolean"},
                            },
                        },
                    },
                },
            },
        }


class UserPagination(PageLimitPagination):
    """User directory pages."""

    results_key = "users"
