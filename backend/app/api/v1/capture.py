"""
采集API路由
"""
from fastapi import APIRouter, Depends, HTTPException, Response

from app.schemas.capture import CaptureRequest, CaptureResponse, SubmitResult
from app.services.ingestion import IngestionService

from .deps import get_ingestion_service, get_user_id

router = APIRouter()


@router.post("", response_model=SubmitResult, status_code=202)
async def submit_capture(
    request: CaptureRequest,
    response: Response,
    user_id: str = Depends(get_user_id),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    提交URL采集

    - **url**: 要保存的URL
    - **notes**: 用户备注（可选）
    - **idempotencyKey**: 幂等键（可选，作为处理链路ID）

    同一用户重复提交同一URL（归一化后）返回已有记录，existing=true，状态码 200
    """
    result = await service.submit_capture(
        user_id=user_id,
        url=request.url,
        notes=request.notes,
        idempotency_key=request.idempotency_key,
    )
    if result.existing:
        response.status_code = 200
    return result


@router.get("/{capture_id}", response_model=CaptureResponse)
async def get_capture(
    capture_id: str,
    user_id: str = Depends(get_user_id),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    查询采集状态与结果
    """
    record = await service.get_capture(user_id, capture_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"采集记录不存在: {capture_id}")
    return CaptureResponse.from_record(record)
