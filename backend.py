#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Content Capture 后端服务启动脚本

此脚本可以启动所有后端服务：
- FastAPI (API 服务器)
- Celery Worker (消费采集与笔记队列)
- Celery Beat (对账定时任务)

使用方法:
    python backend.py --all        # 启动所有服务
    python backend.py --api        # 仅启动 API 服务器
    python backend.py --worker     # 仅启动 Celery Worker
    python backend.py --beat       # 仅启动 Celery Beat
    python backend.py --api --worker --beat  # 启动指定的多个服务
"""

import os
import sys
import subprocess
import time
import signal
import argparse
from pathlib import Path
from typing import Dict, List


processes: List[subprocess.Popen] = []


def signal_handler(sig, frame):
    """处理 Ctrl+C 信号，优雅关闭所有服务"""
    print("\n正在停止所有服务...")
    for proc in processes:
        if proc.poll() is None:  # 进程仍在运行
            proc.terminate()

    # 等待所有进程结束
    time.sleep(2)
    for proc in processes:
        if proc.poll() is None:
            proc.kill()

    print("所有服务已停止")
    sys.exit(0)


def _spawn(command: List[str], backend_dir: Path) -> subprocess.Popen:
    return subprocess.Popen(command, cwd=backend_dir, env=os.environ.copy())


def start_api_server(backend_dir: Path, port: int, reload: bool) -> subprocess.Popen:
    """
    启动 FastAPI 服务器

    Args:
        backend_dir: 后端目录路径
        port: 监听端口
        reload: 是否热重载

    Returns:
        subprocess.Popen 对象
    """
    print("\n启动 FastAPI 服务器...")
    command = [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        command.append("--reload")
    proc = _spawn(command, backend_dir)
    print(f"FastAPI 服务器已启动 (端口 {port})")
    print(f"   API 文档: http://localhost:{port}/docs")
    print(f"   健康检查: http://localhost:{port}/health")
    return proc


def start_celery_worker(backend_dir: Path, concurrency: int) -> subprocess.Popen:
    """
    启动 Celery Worker

    只消费采集与笔记队列，死信队列不消费

    Args:
        backend_dir: 后端目录路径
        concurrency: 并发进程数

    Returns:
        subprocess.Popen 对象
    """
    sys.path.insert(0, str(backend_dir))
    from app.config import settings

    # 缺少必需配置时不启动
    settings.validate_for("worker")

    print("\n启动 Celery Worker...")
    queues = f"{settings.capture_queue_name},{settings.note_queue_name}"
    command = [
        sys.executable, "-m", "celery", "-A", "app.tasks.celery_app", "worker",
        "--loglevel=info", "-Q", queues, f"--concurrency={concurrency}",
    ]
    proc = _spawn(command, backend_dir)
    print(f"Celery Worker 已启动 (队列: {queues})")
    return proc


def start_celery_beat(backend_dir: Path) -> subprocess.Popen:
    """
    启动 Celery Beat

    Args:
        backend_dir: 后端目录路径

    Returns:
        subprocess.Popen 对象
    """
    print("\n启动 Celery Beat...")
    command = [sys.executable, "-m", "celery", "-A", "app.tasks.celery_app", "beat", "--loglevel=info"]
    proc = _spawn(command, backend_dir)
    print("Celery Beat 已启动 (pending 对账任务)")
    return proc


def parse_arguments():
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        description="Content Capture 后端服务启动脚本",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  python backend.py --all        # 启动所有服务
  python backend.py --api        # 仅启动 API 服务器
  python backend.py --worker     # 仅启动 Celery Worker
  python backend.py --beat       # 仅启动 Celery Beat
        """
    )

    parser.add_argument("--all", action="store_true", help="启动所有服务（API + Worker + Beat）")
    parser.add_argument("--api", action="store_true", help="启动 FastAPI 服务器")
    parser.add_argument("--worker", action="store_true", help="启动 Celery Worker")
    parser.add_argument("--beat", action="store_true", help="启动 Celery Beat")
    parser.add_argument("--port", type=int, default=8000, help="API 端口（默认 8000）")
    parser.add_argument("--reload", action="store_true", help="API 热重载（开发用）")
    parser.add_argument("--concurrency", type=int, default=4, help="Worker 并发数（默认 4）")

    return parser.parse_args()


def main():
    """
    启动后端服务
    """
    args = parse_arguments()

    root_dir = Path(__file__).parent.absolute()
    backend_dir = root_dir / "backend"
    if not backend_dir.exists():
        print(f"错误: 后端目录不存在: {backend_dir}")
        sys.exit(1)

    services: Dict[str, bool] = {
        "api": args.all or args.api,
        "worker": args.all or args.worker,
        "beat": args.all or args.beat,
    }
    if not any(services.values()):
        print("请至少指定一个服务（--all / --api / --worker / --beat）")
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if services["api"]:
        processes.append(start_api_server(backend_dir, args.port, args.reload))
    if services["worker"]:
        processes.append(start_celery_worker(backend_dir, args.concurrency))
    if services["beat"]:
        processes.append(start_celery_beat(backend_dir))

    print("\n按 Ctrl+C 停止所有服务")

    # 任一服务退出时停止其余服务
    while True:
        for proc in processes:
            code = proc.poll()
            if code is not None:
                print(f"\n服务进程退出 (pid={proc.pid}, code={code})")
                signal_handler(None, None)
        time.sleep(1)


if __name__ == "__main__":
    main()
