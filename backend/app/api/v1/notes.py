"""
笔记API路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from app.schemas.capture import NoteListResponse, NoteRequest, NoteResponse, SubmitResult
from app.services.ingestion import IngestionService

from .deps import get_ingestion_service, get_user_id

router = APIRouter()


@router.post("", response_model=SubmitResult, status_code=202)
async def submit_note(
    request: NoteRequest,
    response: Response,
    user_id: str = Depends(get_user_id),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    提交笔记

    相同文本（忽略首尾空白与多余空白）重复提交返回已有笔记，existing=true，状态码 200
    """
    result = await service.submit_note(
        user_id=user_id,
        text=request.text,
        idempotency_key=request.idempotency_key,
    )
    if result.existing:
        response.status_code = 200
    return result


@router.get("", response_model=NoteListResponse)
async def list_notes(
    limit: int = Query(20, ge=1, le=100, description="每页条数"),
    status: Optional[str] = Query(None, description="按状态过滤"),
    cursor: Optional[str] = Query(None, description="分页游标"),
    user_id: str = Depends(get_user_id),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    分页获取笔记（按创建时间倒序）
    """
    notes, next_cursor = await service.list_notes(user_id, limit=limit, status=status, cursor=cursor)
    return NoteListResponse(
        notes=[NoteResponse.from_record(n) for n in notes],
        next_cursor=next_cursor,
    )


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: str,
    user_id: str = Depends(get_user_id),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    获取单条笔记
    """
    record = await service.get_note(user_id, note_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"笔记不存在: {note_id}")
    return NoteResponse.from_record(record)
