"""
采集相关Schema定义

包含三类模型：
- 抓取/分析能力的输入输出（ExtractedContent、AnalysisResult 等）
- 队列消息（CaptureMessage、NoteMessage，JSON 使用 camelCase）
- 存储层返回的领域记录（CaptureRecord、NoteRecord、ContentLinkRecord）
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


SOURCE_TYPES = ("twitter", "instagram", "linkedin", "pinterest", "web", "note")
SOCIAL_SOURCE_TYPES = ("twitter", "instagram", "linkedin", "pinterest")

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"
STATUS_FAILED_PERMANENT = "failed_permanent"


class CamelModel(BaseModel):
    """JSON 字段使用 camelCase，Python 侧使用 snake_case"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ========== 抓取结果 ==========

class VideoItem(CamelModel):
    """视频条目"""
    url: str = Field(..., description="视频URL")
    thumbnail: Optional[str] = Field(None, description="封面图URL")
    content_type: Optional[str] = Field(None, description="MIME类型")


class ThreadContext(CamelModel):
    """线程上下文（帖子是否为同作者回复链中的一环）"""
    is_thread_continuation: bool = Field(default=False, description="是否回复同作者的上一条")
    parent_tweet_id: Optional[str] = Field(None, description="父推文ID")
    parent_author_handle: Optional[str] = Field(None, description="父推文作者账号")
    conversation_id: Optional[str] = Field(None, description="会话ID")


class ExtractedContent(CamelModel):
    """Scraper 抓取得到的结构化内容"""
    title: Optional[str] = Field(None, description="标题")
    description: Optional[str] = Field(None, description="描述")
    body_text: str = Field(default="", description="正文")
    author_name: Optional[str] = Field(None, description="作者名")
    author_handle: Optional[str] = Field(None, description="作者账号")
    published_at: Optional[datetime] = Field(None, description="发布时间")
    images: List[str] = Field(default_factory=list, description="图片URL列表")
    videos: List[VideoItem] = Field(default_factory=list, description="视频列表")
    platform_data: Dict[str, Any] = Field(default_factory=dict, description="平台特有数据")
    thread_context: Optional[ThreadContext] = Field(None, description="线程上下文")
    screenshot: Optional[str] = Field(None, description="截图（data URI 或远程URL）")


class ThreadData(CamelModel):
    """线程全文"""
    tweet_count: int = Field(default=0, description="推文条数")
    texts: List[str] = Field(default_factory=list, description="各条推文文本")
    full_text: str = Field(default="", description="拼接后的全文")
    links: List[str] = Field(default_factory=list, description="线程中出现的外链")
    source: str = Field(default="", description="来源（threadreaderapp|fxtwitter）")


class LinkedContent(CamelModel):
    """外链抓取结果（单个外链失败时 error 非空）"""
    url: str = Field(..., description="外链URL")
    title: Optional[str] = Field(None, description="标题")
    description: Optional[str] = Field(None, description="描述")
    body_text: Optional[str] = Field(None, description="正文")
    content_type: Optional[str] = Field(None, description="内容类型（article|pdf|arxiv|web）")
    error: Optional[str] = Field(None, description="抓取错误")


class PlatformData(BaseModel):
    """
    采集记录的 platform_data 字段

    已知子键强类型化，未知子键原样保留
    """
    thread: Optional[ThreadData] = None
    linked_content: Optional[List[LinkedContent]] = None
    screenshot: Optional[str] = None
    is_article: Optional[bool] = Field(None, alias="isArticle")
    user_notes: Optional[str] = None
    tweet_id: Optional[str] = Field(None, alias="tweetId")
    parent_tweet_id: Optional[str] = Field(None, alias="parentTweetId")
    thread_depth: Optional[int] = Field(None, alias="threadDepth")

    class Config:
        extra = "allow"
        populate_by_name = True

    def to_storage(self) -> Dict[str, Any]:
        """序列化为存储用的 dict（省略空值）"""
        return self.model_dump(by_alias=True, exclude_none=True)


# ========== 分析结果 ==========

class AnalysisResult(CamelModel):
    """内容分析结果"""
    summary: str = Field(..., description="摘要")
    topics: List[str] = Field(default_factory=list, description="主题")
    disciplines: List[str] = Field(default_factory=list, description="学科")
    use_cases: List[str] = Field(default_factory=list, description="用途")
    content_type: Optional[str] = Field(None, description="内容类型")


class NoteAnalysisResult(CamelModel):
    """笔记清理结果"""
    cleaned_text: str = Field(..., description="清理后的文本")
    expanded_text: Optional[str] = Field(None, description="扩写后的文本")
    title: str = Field(..., description="标题")
    short_title: Optional[str] = Field(None, description="短标题")
    warnings: List[str] = Field(default_factory=list, description="告警")


# ========== 队列消息 ==========

class CaptureMessage(CamelModel):
    """采集处理消息"""
    capture_id: str
    url: str
    source_type: str
    notes: Optional[str] = None
    user_id: Optional[str] = None
    trace_id: Optional[str] = None
    is_thread_parent: bool = False
    thread_depth: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NoteMessage(CamelModel):
    """笔记处理消息"""
    note_id: str
    user_id: str
    trace_id: str

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ========== 领域记录 ==========

def _vector_to_list(value: Any) -> Any:
    # pgvector 读出的是 numpy 数组
    if value is not None and hasattr(value, "tolist"):
        return value.tolist()
    return value


class CaptureRecord(BaseModel):
    """采集记录（存储层返回的只读快照）"""
    id: str
    user_id: str
    source_url: str
    normalized_url: str
    source_type: str
    status: str
    error_message: Optional[str] = None
    delivery_attempts: int = 0
    title: Optional[str] = None
    description: Optional[str] = None
    body_text: Optional[str] = None
    author_name: Optional[str] = None
    author_handle: Optional[str] = None
    published_at: Optional[datetime] = None
    images: Optional[List[str]] = None
    videos: Optional[List[Dict[str, Any]]] = None
    summary: Optional[str] = None
    topics: Optional[List[str]] = None
    disciplines: Optional[List[str]] = None
    use_cases: Optional[List[str]] = None
    content_type: Optional[str] = None
    thread_root_id: Optional[str] = None
    parent_id: Optional[str] = None
    thread_position: int = 0
    platform_data: Optional[Dict[str, Any]] = None
    embedding: Optional[List[float]] = None
    embedding_generated_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("embedding", mode="before")
    @classmethod
    def normalize_embedding(cls, value: Any) -> Any:
        return _vector_to_list(value)

    @property
    def typed_platform_data(self) -> PlatformData:
        return PlatformData.model_validate(self.platform_data or {})


class NoteRecord(BaseModel):
    """笔记记录（存储层返回的只读快照）"""
    id: str
    user_id: str
    raw_text: str
    content_hash: str
    status: str
    error_message: Optional[str] = None
    processing_attempts: int = 0
    cleaned_text: Optional[str] = None
    expanded_text: Optional[str] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    summary: Optional[str] = None
    topics: Optional[List[str]] = None
    disciplines: Optional[List[str]] = None
    use_cases: Optional[List[str]] = None
    llm_warnings: Optional[List[str]] = None
    llm_model: Optional[str] = None
    llm_prompt_version: Optional[str] = None
    platform_data: Optional[Dict[str, Any]] = None
    embedding: Optional[List[float]] = None
    embedding_generated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("embedding", mode="before")
    @classmethod
    def normalize_embedding(cls, value: Any) -> Any:
        return _vector_to_list(value)


class ContentLinkRecord(BaseModel):
    """内容链接记录"""
    id: str
    source_content_id: str
    target_content_id: Optional[str] = None
    url: str
    link_type: str
    status: str
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ========== 接口请求/响应 ==========

class CaptureRequest(CamelModel):
    """提交采集请求"""
    url: str = Field(..., min_length=1, description="要保存的URL")
    notes: Optional[str] = Field(None, max_length=10000, description="用户备注")
    idempotency_key: Optional[str] = Field(None, max_length=128, description="幂等键（作为处理链路 traceId）")


class SubmitResult(CamelModel):
    """提交结果"""
    id: str = Field(..., description="记录ID")
    status: str = Field(..., description="当前状态")
    existing: bool = Field(..., description="是否命中已有记录")
    source_type: Optional[str] = Field(None, description="来源类型")
    trace_id: Optional[str] = Field(None, description="处理链路ID")


class CaptureResponse(CamelModel):
    """采集记录查询响应"""
    id: str
    source_url: str
    source_type: str
    status: str
    error_message: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    body_text: Optional[str] = None
    author_name: Optional[str] = None
    author_handle: Optional[str] = None
    published_at: Optional[datetime] = None
    images: Optional[List[str]] = None
    videos: Optional[List[Dict[str, Any]]] = None
    summary: Optional[str] = None
    topics: Optional[List[str]] = None
    disciplines: Optional[List[str]] = None
    use_cases: Optional[List[str]] = None
    content_type: Optional[str] = None
    thread_root_id: Optional[str] = None
    parent_id: Optional[str] = None
    thread_position: int = 0
    platform_data: Optional[Dict[str, Any]] = None
    has_embedding: bool = False
    captured_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: CaptureRecord) -> "CaptureResponse":
        data = record.model_dump(exclude={"embedding"})
        data["has_embedding"] = record.embedding is not None
        return cls.model_validate(data)


class NoteRequest(CamelModel):
    """提交笔记请求"""
    text: str = Field(..., min_length=1, max_length=50000, description="笔记文本")
    idempotency_key: Optional[str] = Field(None, max_length=128, description="幂等键（作为处理链路 traceId）")


class NoteResponse(CamelModel):
    """笔记查询响应"""
    id: str
    status: str
    raw_text: str
    cleaned_text: Optional[str] = None
    expanded_text: Optional[str] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    summary: Optional[str] = None
    topics: Optional[List[str]] = None
    disciplines: Optional[List[str]] = None
    use_cases: Optional[List[str]] = None
    llm_warnings: Optional[List[str]] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: NoteRecord) -> "NoteResponse":
        return cls.model_validate(record.model_dump(exclude={"embedding"}))


class NoteListResponse(CamelModel):
    """笔记列表响应"""
    notes: List[NoteResponse] = Field(default_factory=list, description="笔记列表")
    next_cursor: Optional[str] = Field(None, description="下一页游标")
