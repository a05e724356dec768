"""
Prompt Management Routes
"""

from datetime import datetime, timedelta
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from brandlens.api.dependencies import get_owner_id, get_store
from brandlens.schemas import (
    PromptCreate, PromptResponse, PromptResultResponse, VisibilityTrendResponse,
)
from brandlens.services.store import Store
from brandlens.services.trust_aggregator import TrustAggregator

router = APIRouter()


async def _get_owned_prompt(store: Store, prompt_id: UUID, owner_id: UUID):
    prompt = await store.get_prompt(prompt_id, owner_id)
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return prompt


@router.post("", response_model=PromptResponse, status_code=status.HTTP_201_CREATED)
async def create_prompt(
    data: PromptCreate,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Start tracking a prompt for a brand"""
    prompt = await store.create_prompt(
        owner_id,
        text=data.text.strip(),
        brand_name=data.brand_name.strip(),
        brand_domain=data.brand_domain,
        competitors=[c.strip() for c in data.competitors if c.strip()],
        country=data.country,
        category=data.category,
    )
    await store.commit()
    return prompt


@router.get("", response_model=List[PromptResponse])
async def list_prompts(
    limit: int = Query(100, ge=1, le=500),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """List tracked prompts"""
    return await store.list_prompts(owner_id, limit=limit)


@router.get("/{prompt_id}", response_model=PromptResponse)
async def get_prompt(
    prompt_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    return await _get_owned_prompt(store, prompt_id, owner_id)


@router.delete("/{prompt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prompt(
    prompt_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Stop tracking a prompt and drop its history"""
    if not await store.delete_prompt(prompt_id, owner_id):
        raise HTTPException(status_code=404, detail="Prompt not found")
    await store.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{prompt_id}/results", response_model=List[PromptResultResponse])
async def list_prompt_results(
    prompt_id: UUID,
    days: int = Query(30, ge=1, le=365),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Results of completed jobs for a prompt"""
    await _get_owned_prompt(store, prompt_id, owner_id)
    end = datetime.utcnow() + timedelta(seconds=1)
    return await store.list_results(end - timedelta(days=days), end, owner_id=owner_id, prompt_id=prompt_id)


@router.get("/{prompt_id}/visibility-trend", response_model=VisibilityTrendResponse)
async def get_visibility_trend(
    prompt_id: UUID,
    days: int = Query(7, ge=1, le=365),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Visibility delta over the window, from recorded history"""
    await _get_owned_prompt(store, prompt_id, owner_id)
    return await TrustAggregator(store).visibility_trend(prompt_id, days)
