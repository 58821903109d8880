from typing import Any, Callable

from services.query import Page


def page_response(page: Page, serializer: Callable[[Any], dict]) -> dict:
    return {
        "data": [serializer(item) for item in page.items],
        "pagination": page.pagination_dict(),
    }
