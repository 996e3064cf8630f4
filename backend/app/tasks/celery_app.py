"""
Celery 应用配置
"""
from datetime import timedelta

from celery import Celery

from app.config import settings
from app.services.queue import DEAD_LETTER_TASK, PROCESS_CAPTURE_TASK, PROCESS_NOTE_TASK

RECONCILE_TASK = "app.tasks.capture_tasks.reconcile_pending"


# 创建 Celery 应用
app = Celery(
    "content_capture",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.tasks.capture_tasks",
    ]
)

# Celery 配置
app.conf.update(
    # 时区设置（数据库统一存 UTC）
    timezone="UTC",
    enable_utc=True,

    # 任务序列化
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # 结果过期时间
    result_expires=3600,

    # 任务执行限制
    task_time_limit=900,  # 15分钟硬限制
    task_soft_time_limit=600,  # 10分钟软限制

    # 至少一次投递：任务完成后才确认，worker 崩溃时消息回到队列
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # 并发设置
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # 任务路由（死信队列只做暂存，worker 默认不消费）
    task_default_queue=settings.capture_queue_name,
    task_routes={
        PROCESS_CAPTURE_TASK: {"queue": settings.capture_queue_name},
        PROCESS_NOTE_TASK: {"queue": settings.note_queue_name},
        DEAD_LETTER_TASK: {"queue": settings.dead_letter_queue_name},
        RECONCILE_TASK: {"queue": settings.capture_queue_name},
    },

    # 定时任务配置（Celery Beat）
    beat_schedule={
        # 对账：补发卡在 pending 的记录
        "reconcile-pending": {
            "task": RECONCILE_TASK,
            "schedule": timedelta(minutes=settings.reconcile_interval_minutes),
        },
    }
)


if __name__ == "__main__":
    app.start()
