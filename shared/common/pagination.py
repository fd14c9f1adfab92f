# shared/common/pagination.py
"""
Pagination for API list responses
"""

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardPagination(PageNumberPagination):
    """
    Page-number pagination wrapped in the ``success`` envelope used by
    every other response. Schedules are browsed a month or two at a time,
    so pages default to 25 work orders.
    """

    page_size = 25
    page_size_query_param = 'page_size'
    max_page_size = 200

    def get_paginated_response(self, data) -> Response:
        paginator = self.page.paginator
        return Response({
            'success': True,
            'count': paginator.count,
            'page': self.page.number,
            'total_pages': paginator.num_pages,
            'next': self.get_next_link(),
            'previous': self.get_previous_link(),
            'results': data,
        })
