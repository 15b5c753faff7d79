"""
Shopping Lists Router - list CRUD, direct item operations and item ingestion
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List

from models import (
    ShoppingListCreate, ShoppingListResponse, Item, EnqueueAddRequest,
    ItemDraft, EnqueueResponse, SmartAddRequest, SmartAddResponse
)
from dependencies import get_engine, get_list_store, get_smart_add_parser
from database.websocket_manager import ws_manager, EventType
from utils.debug import Loggers
from utils.errors import IngestionError, NotFoundError, handle_unexpected_error, to_api_error

router = APIRouter(prefix="/shopping-lists", tags=["Shopping Lists"])


@router.post("", response_model=ShoppingListResponse)
async def create_shopping_list(data: ShoppingListCreate, store=Depends(get_list_store)):
    try:
        list_id = await store.create(data)
        shopping_list = await store.read(list_id)
    except Exception as e:
        handle_unexpected_error(e, "create shopping list")

    await ws_manager.broadcast_to_list(list_id, EventType.SHOPPING_LIST_CREATED, shopping_list.model_dump())
    return shopping_list


@router.get("", response_model=List[ShoppingListResponse])
async def get_shopping_lists(user_id: str = Query(..., min_length=1), store=Depends(get_list_store)):
    """Lists the user owns or collaborates on."""
    try:
        return await store.list_for_user(user_id)
    except Exception as e:
        handle_unexpected_error(e, "list shopping lists")


@router.get("/{list_id}", response_model=ShoppingListResponse)
async def get_shopping_list(list_id: str, store=Depends(get_list_store)):
    try:
        return await store.read(list_id)
    except IngestionError as e:
        raise to_api_error(e)


@router.delete("/{list_id}")
async def delete_shopping_list(list_id: str, store=Depends(get_list_store)):
    try:
        await store.delete(list_id)
    except IngestionError as e:
        raise to_api_error(e)

    await ws_manager.broadcast_to_list(list_id, EventType.SHOPPING_LIST_DELETED, {"id": list_id})
    return {"message": "Shopping list deleted"}


# =============================================================================
# ITEM INGESTION (queued; results arrive as list updates or merge proposals)
# =============================================================================

@router.post("/{list_id}/items", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def add_shopping_item(list_id: str, data: EnqueueAddRequest, engine=Depends(get_engine)):
    """Queue a new item. Normalization is skipped when the caller already supplies canonical data."""
    draft = ItemDraft(**data.model_dump(exclude={"skip_normalization"}))
    engine.enqueue_add(list_id, draft, skip_normalization=data.skip_normalization)
    return EnqueueResponse(list_id=list_id, pending=engine.has_pending)


@router.put("/{list_id}/items/{item_id}", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def update_shopping_item(list_id: str, item_id: str, data: ItemDraft, engine=Depends(get_engine)):
    """Queue an edit: the item is removed and the new draft is ingested in its place."""
    engine.enqueue_update(list_id, item_id, data)
    return EnqueueResponse(list_id=list_id, pending=engine.has_pending)


@router.post("/{list_id}/smart-add", response_model=SmartAddResponse, status_code=status.HTTP_202_ACCEPTED)
async def smart_add_items(
    list_id: str,
    data: SmartAddRequest,
    engine=Depends(get_engine),
    parser=Depends(get_smart_add_parser),
):
    """Parse free-form input into items and queue them all."""
    try:
        drafts = await parser.parse(data.voice_input)
    except IngestionError as e:
        Loggers.api.warning("Smart add parsing failed", list_id=list_id, error=str(e))
        raise to_api_error(e)

    engine.enqueue_many(list_id, drafts, skip_normalization=True)
    return SmartAddResponse(list_id=list_id, items=drafts)


# =============================================================================
# DIRECT ITEM OPERATIONS
# =============================================================================

@router.delete("/{list_id}/items/{item_id}")
async def delete_shopping_item(list_id: str, item_id: str, store=Depends(get_list_store)):
    try:
        deleted = await store.delete_item(list_id, item_id)
    except IngestionError as e:
        raise to_api_error(e)

    if not deleted:
        raise NotFoundError("Item", item_id)

    await ws_manager.broadcast_to_list(list_id, EventType.SHOPPING_LIST_UPDATED, await _list_payload(store, list_id))
    return {"message": "Item deleted"}


@router.post("/{list_id}/items/{item_id}/toggle", response_model=Item)
async def toggle_shopping_item(list_id: str, item_id: str, store=Depends(get_list_store)):
    try:
        item = await store.toggle_checked(list_id, item_id)
    except IngestionError as e:
        raise to_api_error(e)

    if item is None:
        raise NotFoundError("Item", item_id)

    await ws_manager.broadcast_to_list(list_id, EventType.SHOPPING_LIST_UPDATED, await _list_payload(store, list_id))
    return item


async def _list_payload(store, list_id: str) -> dict:
    try:
        shopping_list = await store.read(list_id)
    except IngestionError:
        return {"id": list_id}
    return {"id": list_id, "items": [item.model_dump() for item in shopping_list.items]}
