"""
API router for newsletter subscriptions.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..email_service import SubscriptionService

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])


class SubscribeRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    topics: Optional[List[str]] = None
    sources: Optional[List[str]] = None
    frequency: Optional[str] = None


class UnsubscribeRequest(BaseModel):
    email: Optional[str] = None


def get_subscriptions(request: Request) -> SubscriptionService:
    return request.app.state.pipeline.subscriptions


@router.post("/subscribe")
async def subscribe(
    payload: SubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    """
    Subscribe an email to the newsletter.
    An existing email keeps its id and has its preferences overwritten.
    """
    subscriber = await service.subscribe(
        payload.email,
        name=payload.name,
        topics=payload.topics,
        sources=payload.sources,
        frequency=payload.frequency,
    )
    return {
        "message": "Successfully subscribed to newsletter",
        "subscription": subscriber.to_dict(),
    }


@router.post("/unsubscribe")
async def unsubscribe(
    payload: UnsubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    result = await service.unsubscribe(payload.email)
    return {
        "message": "Successfully unsubscribed from newsletter",
        "result": result.to_dict(),
    }


@router.get("/subscribers")
async def list_subscribers(
    active_only: bool = True,
    service: SubscriptionService = Depends(get_subscriptions),
):
    subscribers = await service.list(active_only=active_only)
    return {
        "subscribers": [s.to_dict() for s in subscribers],
        "count": len(subscribers),
    }
