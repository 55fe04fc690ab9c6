"""
VOD Archive API — Chat replay routes.
"""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path

from vodarchive.api.deps import get_chat
from vodarchive.services.chat.chat_assembler import ChatAssembler

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.get("/{video_id}", response_model=List[int])
async def chat_timecodes(video_id: str, chat: ChatAssembler = Depends(get_chat)):
    """Seconds with chat data; 404 ``chat_unavailable`` when the video has none."""
    return await chat.list_timecodes(video_id)


@router.get("/{video_id}/{start}/{end}", response_model=List[Dict[str, Any]])
async def chat_range(
    video_id: str,
    start: int = Path(..., ge=0),
    end: int = Path(..., ge=0),
    chat: ChatAssembler = Depends(get_chat),
):
    """Messages for seconds start..end inclusive, in playback order."""
    messages = await chat.assemble_range(video_id, start, end)
    return [m.to_dict() for m in messages]
