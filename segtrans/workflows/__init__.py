"""
工作流
"""
from .file_workflow import FileWorkflow

__all__ = ['FileWorkflow']
