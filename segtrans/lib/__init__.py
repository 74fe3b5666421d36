"""
基础设施：存储与 AI 适配器
"""
from .segment_db import SegmentDatabase

__all__ = ['SegmentDatabase']
