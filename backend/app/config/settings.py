"""
应用配置管理

使用 pydantic-settings 从环境变量加载配置
"""
from typing import Dict, List, Tuple
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.exceptions import ConfigurationError


# 各进程角色启动时必须存在的配置项
REQUIRED_BY_ROLE: Dict[str, Tuple[str, ...]] = {
    "api": (
        "db_host",
        "db_name",
        "celery_broker_url",
        "capture_queue_name",
        "note_queue_name",
    ),
    "worker": (
        "db_host",
        "db_name",
        "celery_broker_url",
        "capture_queue_name",
        "note_queue_name",
        "dead_letter_queue_name",
    ),
}


class Settings(BaseSettings):
    """应用全局配置"""

    # ========== 基础配置 ==========
    env: str = Field(default="development", description="运行环境")
    debug: bool = Field(default=False, description="调试模式")
    app_name: str = Field(default="Content Capture", description="应用名称")
    app_version: str = Field(default="0.3.0", description="应用版本")
    api_v1_prefix: str = Field(default="/api/v1", description="API v1路径前缀")
    default_user_id: str = Field(default="", description="单用户模式下的默认用户ID（无 X-User-Id 请求头时使用）")

    # ========== 数据库配置 ==========
    db_host: str = Field(default="localhost", description="数据库主机")
    db_port: int = Field(default=5432, description="数据库端口")
    db_user: str = Field(default="capture", description="数据库用户")
    db_password: str = Field(default="capture_password", description="数据库密码")
    db_name: str = Field(default="content_capture", description="数据库名称")
    db_pool_size: int = Field(default=10, description="连接池大小")
    db_max_overflow: int = Field(default=20, description="连接池溢出上限")

    @property
    def database_url(self) -> str:
        """构建数据库URL"""
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def database_url_sync(self) -> str:
        """构建同步数据库URL（用于迁移脚本）"""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # ========== Celery / 队列配置 ==========
    celery_broker_url: str = Field(default="redis://localhost:6379/1", description="Celery broker")
    celery_result_backend: str = Field(default="redis://localhost:6379/2", description="Celery结果后端")
    capture_queue_name: str = Field(default="content-capture-process", description="采集处理队列名")
    note_queue_name: str = Field(default="content-capture-notes", description="笔记处理队列名")
    dead_letter_queue_name: str = Field(default="content-capture-dead-letter", description="死信队列名")
    max_delivery_attempts: int = Field(default=5, ge=1, description="单条消息最大投递次数（超过后进入死信）")
    redelivery_backoff_seconds: int = Field(default=30, ge=1, description="重投递基础退避秒数（指数增长）")
    redelivery_backoff_max_seconds: int = Field(default=1800, description="重投递最大退避秒数")

    # ========== 流水线配置 ==========
    max_linked_urls: int = Field(default=5, ge=0, description="每条采集最多抓取的外链数")
    max_thread_depth: int = Field(default=10, ge=0, description="线程父推文递归入队的最大深度")
    auto_capture_linked_content: bool = Field(default=False, description="是否为外链自动创建独立采集记录")
    scrape_timeout_seconds: float = Field(default=60, description="主内容抓取超时秒数")
    thread_fetch_timeout_seconds: float = Field(default=45, description="线程全文获取超时秒数")
    link_scrape_timeout_seconds: float = Field(default=30, description="单个外链抓取超时秒数")
    media_timeout_seconds: float = Field(default=30, description="单个媒体下载上传超时秒数")
    analyze_timeout_seconds: float = Field(default=120, description="LLM分析超时秒数")
    embed_timeout_seconds: float = Field(default=60, description="向量生成超时秒数")
    media_max_bytes: int = Field(default=50 * 1024 * 1024, description="单个媒体文件最大字节数")
    embedding_body_chars: int = Field(default=4000, description="向量输入中正文的最大字符数")
    embedding_link_chars: int = Field(default=1500, description="向量输入中每个外链正文的最大字符数")
    embedding_thread_chars: int = Field(default=4000, description="向量输入中线程全文的最大字符数")
    embedding_max_tokens: int = Field(default=8191, description="向量输入最大Token数")

    # ========== 对账配置 ==========
    reconcile_interval_minutes: int = Field(default=15, description="对账扫描间隔（分钟）")
    reconcile_pending_after_minutes: int = Field(default=30, description="pending 超过多少分钟视为卡住")
    reconcile_batch_size: int = Field(default=100, description="单次对账最多重新入队条数")

    # ========== 抓取配置 ==========
    fetch_timeout_seconds: int = Field(default=15, description="HTTP抓取超时秒数")
    fetch_max_retries: int = Field(default=2, description="HTTP抓取最大重试次数")
    fxtwitter_api_base: str = Field(default="https://api.fxtwitter.com", description="FxTwitter API 地址")
    threadreader_base: str = Field(default="https://threadreaderapp.com", description="ThreadReaderApp 地址")
    user_agent: str = Field(
        default="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        description="抓取使用的 User-Agent"
    )

    # ========== LLM配置 ==========
    llm_provider: str = Field(default="openai", description="LLM提供商（openai|azure|openai_compatible|qwen）")

    # OpenAI配置
    openai_api_key: str = Field(default="", description="OpenAI API密钥")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI模型")
    openai_embedding_model: str = Field(default="text-embedding-3-small", description="OpenAI嵌入模型")

    # Azure配置
    azure_openai_api_key: str = Field(default="", description="Azure OpenAI API密钥")
    azure_openai_endpoint: str = Field(default="", description="Azure OpenAI端点")
    azure_openai_api_version: str = Field(default="2024-02-15-preview", description="Azure API版本")
    azure_deployment_name: str = Field(default="", description="Azure部署名称")
    azure_embedding_deployment_name: str = Field(default="text-embedding-3-small", description="Azure嵌入部署名称")

    # Qwen配置
    qwen_model: str = Field(default="qwen3-32b", description="Qwen模型")
    qwen_embedding_model: str = Field(default="Qwen3-Embedding-8B", description="Qwen嵌入模型")
    qwen_api_base: str = Field(default="http://localhost:8000/v1", description="Qwen API基础URL")
    qwen_api_key: str = Field(default="", description="Qwen API密钥")

    # OpenAI-Compatible配置（支持 Ollama、LM Studio、vLLM 等）
    openai_compatible_base_url: str = Field(default="http://localhost:11434/v1", description="OpenAI兼容服务的基础URL")
    openai_compatible_api_key: str = Field(default="not-needed", description="OpenAI兼容服务的API密钥")
    openai_compatible_model: str = Field(default="llama3", description="OpenAI兼容服务的模型名称")
    openai_compatible_embedding_model: str = Field(default="nomic-embed-text", description="OpenAI兼容服务的嵌入模型名称")

    # ========== LLM调用配置 ==========
    llm_max_tokens: int = Field(default=2000, description="LLM生成最大Token数")
    llm_temperature: float = Field(default=0.2, description="LLM温度参数")
    llm_timeout_seconds: int = Field(default=90, description="LLM HTTP超时秒数")
    analysis_body_chars: int = Field(default=12000, description="送入分析的正文最大字符数")

    # ========== 向量配置 ==========
    embedding_dimension: int = Field(default=1536, description="向量维度")

    # ========== 媒体存储配置 ==========
    media_backend: str = Field(default="s3", description="媒体存储后端（s3|local）")
    media_bucket: str = Field(default="", description="媒体存储桶名")
    media_region: str = Field(default="us-east-1", description="S3区域")
    media_access_key: str = Field(default="", description="S3访问密钥")
    media_secret_key: str = Field(default="", description="S3密钥")
    media_endpoint_url: str = Field(default="", description="S3兼容端点（MinIO/R2 等，留空使用 AWS）")
    media_public_base_url: str = Field(default="", description="媒体公开访问URL前缀")
    media_local_root: str = Field(default="./data/media", description="本地媒体存储根目录")

    # ========== 监控 / 日志配置 ==========
    metrics_enabled: bool = Field(default=True, description="是否启用指标")
    log_level: str = Field(default="INFO", description="日志级别")
    structured_logging: bool = Field(default=True, description="是否使用结构化日志")

    # ========== 安全配置 ==========
    allowed_origins: str = Field(default="http://localhost:3000", description="允许的CORS源")

    @property
    def allowed_origins_list(self) -> List[str]:
        """返回允许的CORS源列表"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @field_validator("media_backend", "llm_provider")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()

    def require(self, *names: str) -> None:
        """
        校验指定配置项非空

        Args:
            names: 配置字段名

        Raises:
            ConfigurationError: 存在缺失的配置项
        """
        missing = []
        for name in names:
            value = getattr(self, name)
            if isinstance(value, str) and not value.strip():
                missing.append(name.upper())
        if missing:
            raise ConfigurationError(
                f"缺少必需配置: {', '.join(missing)}",
                missing=missing
            )

    def validate_for(self, role: str) -> None:
        """
        按进程角色校验启动配置

        Args:
            role: api | worker
        """
        if role not in REQUIRED_BY_ROLE:
            raise ValueError(f"未知的进程角色: {role}")
        self.require(*REQUIRED_BY_ROLE[role])
        if role != "worker":
            return
        if self.media_backend == "s3":
            self.require("media_bucket")
        elif self.media_backend != "local":
            raise ConfigurationError(f"不支持的媒体存储后端: {self.media_backend}")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# 全局配置实例
settings = Settings()
