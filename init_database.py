#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
初始化数据库表
"""
import sys
import asyncio
from pathlib import Path

# 添加backend到路径
backend_dir = Path(__file__).parent / "backend"
sys.path.insert(0, str(backend_dir))

from sqlalchemy import text
from app.core.database import get_engine
from app.models import Base


async def init_tables():
    """创建所有数据库表"""
    print("开始初始化数据库表...")

    engine = get_engine()
    async with engine.begin() as conn:
        # content_items.embedding / notes.embedding 依赖 pgvector
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        print("pgvector扩展已就绪")

        await conn.run_sync(Base.metadata.create_all)
        print("数据库表创建完成")

        result = await conn.execute(text(
            "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY tablename"
        ))
        for (name,) in result:
            print(f"   - {name}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_tables())
