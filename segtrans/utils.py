"""
工具函数
"""
import json
import yaml
import hashlib
import time
from pathlib import Path
from typing import Dict, Any

import aiofiles


def load_config(config_path: str) -> Dict[str, Any]:
    """加载配置文件（yaml 或 json）"""
    with open(config_path, 'r', encoding='utf-8') as f:
        if config_path.endswith('.yaml') or config_path.endswith('.yml'):
            return yaml.safe_load(f) or {}
        else:
            return json.load(f)


async def read_bytes_async(file_path: str) -> bytes:
    """异步读取二进制文件"""
    async with aiofiles.open(file_path, 'rb') as f:
        return await f.read()


async def read_text_async(file_path: str) -> str:
    async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
        return await f.read()


async def write_bytes_async(data: bytes, file_path: str):
    ensure_dir(str(Path(file_path).parent))
    async with aiofiles.open(file_path, 'wb') as f:
        await f.write(data)


async def write_text_async(text: str, file_path: str):
    ensure_dir(str(Path(file_path).parent))
    async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
        await f.write(text)


def create_file_id(prefix: str = "file") -> str:
    """创建文件ID"""
    timestamp = int(time.time())
    random_suffix = hashlib.md5(str(time.time_ns()).encode()).hexdigest()[:8]
    return f"{prefix}_{timestamp}_{random_suffix}"


def ensure_dir(path: str) -> Path:
    """确保目录存在"""
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def format_duration(seconds: float) -> str:
    """格式化持续时间"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"
