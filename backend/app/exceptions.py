"""
异常定义

区分配置错误（服务不可用）、请求错误与流水线各阶段的失败
"""
from typing import List, Optional


class CaptureError(Exception):
    """所有业务异常的基类"""


class ConfigurationError(CaptureError):
    """必需配置缺失或非法（对应 503，而非普通 500）"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class InvalidCaptureError(CaptureError):
    """提交的URL或笔记内容非法"""


class DuplicateRecordError(CaptureError):
    """存储层唯一约束冲突（并发创建同一记录）"""


class ScrapeError(CaptureError):
    """主内容抓取失败，终止本次处理"""


class AnalysisError(CaptureError):
    """LLM 分析失败，终止本次处理"""


class MediaError(CaptureError):
    """单个媒体下载或上传失败（本地恢复，不终止处理）"""


class EmbeddingError(CaptureError):
    """向量生成失败（本地恢复，不终止处理）"""


class QueuePublishError(CaptureError):
    """消息发送到队列失败"""
