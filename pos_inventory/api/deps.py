from fastapi import Request

from pos_inventory.cache import ReadThroughCache
from pos_inventory.pagination import Page
from pos_inventory.services.stock_service import ScanStockProjector


def get_cache(request: Request) -> ReadThroughCache:
    return request.app.state.cache


def get_projector(request: Request) -> ScanStockProjector:
    return ScanStockProjector(cache=request.app.state.cache)


def page_out(schema, item_schema, page: Page):
    return schema(
        items=[item_schema.model_validate(row) for row in page.items],
        next_cursor=page.next_cursor,
    )
