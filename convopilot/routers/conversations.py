"""Operator control over individual conversations."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from convopilot.dependencies import get_bridge, require_admin_token
from convopilot.schemas.conversation import (
    ActivateRequest,
    ActivateResponse,
    ConversationOut,
    DeactivateRequest,
    StateChangeResponse,
)
from convopilot.services.bridge import DispatchBridge
from convopilot.services.lifecycle_service import ActivationContext, Conversation
from convopilot.services.state_machine import ConversationState

router = APIRouter(prefix="/conversations", tags=["conversations"], dependencies=[Depends(require_admin_token)])


def _to_out(conversation: Conversation) -> ConversationOut:
    return ConversationOut(
        user_id=conversation.user_id,
        state=conversation.state.value,
        started_at=conversation.started_at,
        finished_at=conversation.finished_at,
        user_name=conversation.user_name,
        user_number=conversation.user_number,
    )


def _state_of(bridge: DispatchBridge, user_id: str) -> Optional[str]:
    conversation = bridge.lifecycle.get(user_id)
    return conversation.state.value if conversation else None


@router.get("", response_model=list[ConversationOut])
async def list_conversations(state: Optional[str] = None, bridge: DispatchBridge = Depends(get_bridge)):
    state_filter = None
    if state:
        try:
            state_filter = ConversationState(state.strip().lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown state: {state}")
    return [_to_out(c) for c in bridge.lifecycle.list_conversations(state_filter)]


@router.get("/{user_id}", response_model=ConversationOut)
async def get_conversation(user_id: str, bridge: DispatchBridge = Depends(get_bridge)):
    conversation = bridge.lifecycle.get(user_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _to_out(conversation)


@router.post("/{user_id}/activate", response_model=ActivateResponse)
async def activate_conversation(
    user_id: str,
    payload: Optional[ActivateRequest] = None,
    bridge: DispatchBridge = Depends(get_bridge),
):
    canonical = bridge.lifecycle.canonical_id(user_id)
    if not canonical:
        raise HTTPException(status_code=400, detail="user_id is required")

    payload = payload or ActivateRequest()
    result = await bridge.activate(
        canonical,
        ActivationContext(user_name=payload.user_name, user_number=payload.user_number),
    )
    return ActivateResponse(
        user_id=result.user_id,
        activated=result.activated,
        previous_state=result.previous_state.value,
        state=_state_of(bridge, result.user_id) or ConversationState.INACTIVE.value,
    )


@router.post("/{user_id}/deactivate", response_model=StateChangeResponse)
async def deactivate_conversation(
    user_id: str,
    payload: Optional[DeactivateRequest] = None,
    bridge: DispatchBridge = Depends(get_bridge),
):
    payload = payload or DeactivateRequest()
    canonical = bridge.lifecycle.canonical_id(user_id)
    changed = bridge.deactivate(canonical, finished=payload.finished)
    return StateChangeResponse(user_id=canonical, changed=changed, state=_state_of(bridge, canonical))


@router.post("/{user_id}/clear", response_model=StateChangeResponse)
async def clear_finished_conversation(user_id: str, bridge: DispatchBridge = Depends(get_bridge)):
    canonical = bridge.lifecycle.canonical_id(user_id)
    changed = bridge.clear_finished(canonical)
    return StateChangeResponse(user_id=canonical, changed=changed, state=_state_of(bridge, canonical))
