"""
Memory Routes - what a character remembers about the caller.

Endpoints:
- GET    /memory                 : Characters with at least one fact
- GET    /memory/{character_id}  : Facts for one character
- POST   /memory                 : Add a fact
- PATCH  /memory                 : Replace a fact
- DELETE /memory                 : Remove a fact
- POST   /memory/reset           : Forget everything for one character
"""
from typing import List

from fastapi import APIRouter, Depends

from companion.api.dependencies import get_memory_store, get_request_context
from companion.core.context import RequestContext
from companion.memory.store import MemoryStore
from companion.models.chat import (
    CharacterMemorySummary,
    ErrorResponse,
    MemoryFactRequest,
    MemoryListResponse,
    MemoryResetRequest,
    MemoryUpdateRequest,
)

router = APIRouter(
    prefix="/memory",
    tags=["Memory"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing user identity"},
        404: {"model": ErrorResponse, "description": "Memory not found"},
    }
)


@router.get("", response_model=List[CharacterMemorySummary], summary="Characters with memories")
def characters_with_memories(
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> List[CharacterMemorySummary]:
    user_id = context.require_user()
    return [CharacterMemorySummary(**row) for row in store.characters_with_memories(user_id)]


@router.get("/{character_id}", response_model=MemoryListResponse, summary="List facts")
def list_memories(
    character_id: str,
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryListResponse:
    user_id = context.require_user()
    return MemoryListResponse(character_id=character_id, facts=store.list(user_id, character_id))


@router.post("", response_model=MemoryListResponse, summary="Add a fact")
def add_memory(
    request: MemoryFactRequest,
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryListResponse:
    user_id = context.require_user()
    facts = store.add(user_id, request.character_id, request.fact)
    return MemoryListResponse(character_id=request.character_id, facts=facts)


@router.patch("", response_model=MemoryListResponse, summary="Replace a fact")
def update_memory(
    request: MemoryUpdateRequest,
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryListResponse:
    user_id = context.require_user()
    facts = store.update(user_id, request.character_id, request.old_fact, request.new_fact)
    return MemoryListResponse(character_id=request.character_id, facts=facts)


@router.delete("", response_model=MemoryListResponse, summary="Remove a fact")
def delete_memory(
    request: MemoryFactRequest,
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryListResponse:
    user_id = context.require_user()
    facts = store.delete(user_id, request.character_id, request.fact)
    return MemoryListResponse(character_id=request.character_id, facts=facts)


@router.post("/reset", response_model=MemoryListResponse, summary="Forget everything")
def reset_memories(
    request: MemoryResetRequest,
    context: RequestContext = Depends(get_request_context),
    store: MemoryStore = Depends(get_memory_store),
) -> MemoryListResponse:
    user_id = context.require_user()
    store.reset(user_id, request.character_id)
    return MemoryListResponse(character_id=request.character_id, facts=[])
