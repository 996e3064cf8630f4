"""
监控服务

提供Prometheus指标收集和系统健康检查
"""
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from typing import Dict, Any, Optional
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
import psutil
import platform

from app.config import settings
from app.models import CaptureItem, Note
from app.schemas.capture import STATUS_PENDING
from app.utils.timezone import now_utc


# ========== Prometheus 指标定义 ==========

# 提交指标
submissions_total = Counter(
    'capture_submissions_total',
    '提交总次数',
    ['kind', 'result']  # kind: capture/note, result: created/existing/invalid
)

enqueue_failures_total = Counter(
    'capture_enqueue_failures_total',
    '入队失败次数',
    ['kind']
)

# 处理指标
processing_total = Counter(
    'capture_processing_total',
    '处理结果总数',
    ['kind', 'source_type', 'outcome']  # outcome: complete/failed/dead_letter/skipped
)

processing_duration = Histogram(
    'capture_processing_duration_seconds',
    '单条处理耗时（秒）',
    ['kind', 'source_type'],
    buckets=(1, 2.5, 5, 10, 20, 30, 60, 120, 300)
)

step_failures_total = Counter(
    'capture_step_failures_total',
    '流水线步骤失败次数（含可恢复失败）',
    ['step']  # scrape/thread/links/media/analyze/embed
)

linked_urls_total = Counter(
    'capture_linked_urls_total',
    '外链抓取结果',
    ['result']  # ok/error
)

thread_parents_total = Counter(
    'capture_thread_parents_total',
    '线程父推文解析结果',
    ['action']  # linked/created/raced/skipped/unresolved
)

reconciled_total = Counter(
    'capture_reconciled_total',
    '对账重新入队的记录数',
    ['kind']
)

# 积压指标
pending_backlog = Gauge(
    'capture_pending_backlog',
    'pending 状态记录数',
    ['kind']
)

# 系统资源指标
system_cpu_percent = Gauge(
    'capture_system_cpu_percent',
    'CPU使用率'
)

system_memory_percent = Gauge(
    'capture_system_memory_percent',
    '内存使用率'
)

system_disk_percent = Gauge(
    'capture_system_disk_percent',
    '磁盘使用率'
)

# 系统信息
system_info = Info(
    'capture_system',
    '系统信息'
)


class MonitoringService:
    """监控服务"""

    def __init__(self):
        # 初始化系统信息
        system_info.info({
            'version': settings.app_version,
            'python_version': platform.python_version(),
            'platform': platform.system(),
            'hostname': platform.node()
        })

    async def update_metrics(self, db: AsyncSession):
        """
        更新所有指标

        定期调用以更新Gauge类型的指标
        """
        # 1. 更新积压统计
        await self._update_backlog_metrics(db)

        # 2. 更新系统资源
        self._update_system_metrics()

    async def _update_backlog_metrics(self, db: AsyncSession):
        """更新 pending 积压指标"""
        capture_count = await db.scalar(
            select(func.count(CaptureItem.id)).where(CaptureItem.status == STATUS_PENDING)
        ) or 0
        pending_backlog.labels(kind='capture').set(capture_count)

        note_count = await db.scalar(
            select(func.count(Note.id)).where(Note.status == STATUS_PENDING)
        ) or 0
        pending_backlog.labels(kind='note').set(note_count)

    def _update_system_metrics(self):
        """更新系统资源指标"""
        system_cpu_percent.set(psutil.cpu_percent(interval=None))
        system_memory_percent.set(psutil.virtual_memory().percent)
        system_disk_percent.set(psutil.disk_usage('/').percent)

    async def get_health_status(self, db: AsyncSession) -> Dict[str, Any]:
        """
        获取系统健康状态

        Returns:
            健康状态信息
        """
        status = {
            "status": "healthy",
            "timestamp": now_utc().isoformat(),
            "components": {}
        }

        # 1. 检查数据库连接
        try:
            await db.execute(text("SELECT 1"))
            status["components"]["database"] = {"status": "up"}
        except Exception as e:
            status["components"]["database"] = {
                "status": "down",
                "error": str(e)
            }
            status["status"] = "unhealthy"
            return status

        # 2. 检查积压（长时间 pending 说明消费端停滞或入队丢失）
        threshold = now_utc() - timedelta(minutes=settings.reconcile_pending_after_minutes)
        stale = await db.scalar(
            select(func.count(CaptureItem.id)).where(
                CaptureItem.status == STATUS_PENDING,
                CaptureItem.created_at < threshold,
            )
        ) or 0
        pipeline = {"status": "active", "stale_pending": stale}
        if stale:
            pipeline["status"] = "backlogged"
            pipeline["warning"] = f"{stale} 条采集 pending 超过 {settings.reconcile_pending_after_minutes} 分钟"
        status["components"]["pipeline"] = pipeline

        # 3. 检查系统资源
        cpu_percent = psutil.cpu_percent()
        memory_percent = psutil.virtual_memory().percent
        disk_percent = psutil.disk_usage('/').percent

        resource_status = "healthy"
        warnings = []

        if cpu_percent > 90:
            resource_status = "warning"
            warnings.append(f"CPU使用率过高: {cpu_percent}%")

        if memory_percent > 90:
            resource_status = "warning"
            warnings.append(f"内存使用率过高: {memory_percent}%")

        if disk_percent > 90:
            resource_status = "critical"
            warnings.append(f"磁盘使用率过高: {disk_percent}%")
            status["status"] = "unhealthy"

        status["components"]["resources"] = {
            "status": resource_status,
            "cpu_percent": round(cpu_percent, 2),
            "memory_percent": round(memory_percent, 2),
            "disk_percent": round(disk_percent, 2),
            "warnings": warnings
        }

        return status

    async def get_metrics_summary(self, db: AsyncSession) -> Dict[str, Any]:
        """
        获取指标摘要

        Returns:
            最近24小时的采集与笔记状态统计
        """
        since = now_utc() - timedelta(hours=24)

        capture_stmt = (
            select(CaptureItem.status, func.count(CaptureItem.id))
            .where(CaptureItem.created_at >= since)
            .group_by(CaptureItem.status)
        )
        capture_stats = {row[0]: row[1] for row in await db.execute(capture_stmt)}

        source_stmt = (
            select(CaptureItem.source_type, func.count(CaptureItem.id))
            .where(CaptureItem.created_at >= since)
            .group_by(CaptureItem.source_type)
        )
        source_stats = {row[0]: row[1] for row in await db.execute(source_stmt)}

        note_stmt = (
            select(Note.status, func.count(Note.id))
            .where(Note.created_at >= since)
            .group_by(Note.status)
        )
        note_stats = {row[0]: row[1] for row in await db.execute(note_stmt)}

        return {
            "period": "24h",
            "timestamp": now_utc().isoformat(),
            "captures": capture_stats,
            "sources": source_stats,
            "notes": note_stats,
        }

    def get_prometheus_metrics(self) -> tuple:
        """
        获取Prometheus格式的指标

        Returns:
            (metrics_text, content_type)
        """
        return generate_latest(), CONTENT_TYPE_LATEST


# 全局监控服务实例
monitoring_service = MonitoringService()


# 便捷函数用于记录指标
def record_submission(kind: str, result: str):
    """记录提交指标"""
    submissions_total.labels(kind=kind, result=result).inc()


def record_enqueue_failure(kind: str):
    """记录入队失败"""
    enqueue_failures_total.labels(kind=kind).inc()


def record_processing(kind: str, source_type: str, outcome: str, duration: Optional[float] = None):
    """记录处理结果"""
    processing_total.labels(kind=kind, source_type=source_type, outcome=outcome).inc()
    if duration is not None:
        processing_duration.labels(kind=kind, source_type=source_type).observe(duration)


def record_step_failure(step: str):
    """记录步骤失败"""
    step_failures_total.labels(step=step).inc()


def record_linked_url(ok: bool):
    """记录外链抓取结果"""
    linked_urls_total.labels(result='ok' if ok else 'error').inc()


def record_thread_parent(action: str):
    """记录线程父推文解析结果"""
    thread_parents_total.labels(action=action).inc()


def record_reconciled(kind: str, count: int):
    """记录对账重新入队数"""
    if count > 0:
        reconciled_total.labels(kind=kind).inc(count)
