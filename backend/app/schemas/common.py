"""
通用Schema定义
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """错误响应"""
    code: str = Field(..., description="错误码")
    message: str = Field(..., description="错误消息")
    request_id: Optional[str] = Field(None, description="请求ID")
    missing: Optional[List[str]] = Field(None, description="缺失的配置项（仅配置错误）")

    class Config:
        json_schema_extra = {
            "example": {
                "code": "INVALID_ARGUMENT",
                "message": "参数缺失或非法",
                "request_id": "req_123456"
            }
        }


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(default="ok", description="状态")
    version: Optional[str] = Field(None, description="版本号")
    timestamp: Optional[str] = Field(None, description="时间戳")
