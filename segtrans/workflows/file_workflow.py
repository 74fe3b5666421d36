"""
文件级工作流：注册 -> 提取段落 -> 翻译（批量或顺序）-> 导出
"""
import logging
from pathlib import Path
from typing import List, Optional, Union

from ..errors import PersistenceError
from ..lib.adapters import AIServiceFactory
from ..lib.segment_db import SegmentDatabase
from ..models import (
    FileRecord, FileType, Segment, SegmentStatus, TaskStatus, TokenUsage, TranslationMeta,
    TranslationProgress, FileTranslationSummary, summarize_segments,
)
from ..processing import ExtractionResult, FileProcessorFactory, detect_file_type, render_plain_text
from ..translation import (
    BatchTranslationOutcome, FileTranslationRunner, TranslationOptions,
    TranslationOrchestrator, TranslationService,
)
from ..translation.runner import ProgressCallback
from ..utils import create_file_id, write_text_async

logger = logging.getLogger(__name__)


class FileWorkflow:
    """串联文件处理、翻译与导出"""

    def __init__(self, db: SegmentDatabase, factory: Optional[AIServiceFactory] = None,
                 processors: Optional[FileProcessorFactory] = None):
        self.db = db
        self.factory = factory
        self.processors = processors or FileProcessorFactory()

    def _require_file(self, file_id: str) -> FileRecord:
        record = self.db.get_file(file_id)
        if record is None:
            raise ValueError(f"文件不存在: {file_id}")
        return record

    def register_file(self, path: str, file_type: Optional[FileType] = None) -> FileRecord:
        file_type = file_type or detect_file_type(path)
        record = FileRecord(
            id=create_file_id(),
            path=str(Path(path).resolve()),
            file_type=file_type,
            name=Path(path).name,
        )
        self.db.insert_file(record)
        logger.info(f"注册文件 {record.name} ({file_type.value}) -> {record.id}")
        return record

    async def extract_file(self, file_id: str, options: Optional[dict] = None) -> ExtractionResult:
        """提取段落；重新提取会先清空该文件已有的段落"""
        record = self._require_file(file_id)
        processor = self.processors.get_processor(record.file_type)
        if processor is None:
            raise ValueError(f"没有 {record.file_type.value} 类型的处理器")

        result = await processor.extract_segments(record.path, file_id, options)

        metadata = dict(record.metadata)
        metadata.update({k: v for k, v in result.metadata.items() if v is not None})
        self.db.replace_file_segments(file_id, result.segments, metadata=metadata)
        logger.info(f"文件 {file_id} 提取 {result.segment_count} 个段落")
        return result

    async def translate_file(
        self,
        file_id: str,
        options: TranslationOptions,
        sequential: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        max_attempts: Optional[int] = None,
    ) -> Union[BatchTranslationOutcome, TranslationProgress]:
        if not sequential:
            orchestrator = TranslationOrchestrator(self.db, factory=self.factory)
            return await orchestrator.translate_multiple_segments(file_id, options)
        return await self._translate_sequential(file_id, options, progress_callback, max_attempts)

    async def _translate_sequential(self, file_id: str, options: TranslationOptions,
                                    progress_callback: Optional[ProgressCallback],
                                    max_attempts: Optional[int]) -> TranslationProgress:
        record = self._require_file(file_id)
        options = options.with_file_defaults(record.metadata)
        segments = self.db.find_many(
            {"file_id": file_id, "status": [SegmentStatus.PENDING, SegmentStatus.TRANSLATION_FAILED]},
            sort=[("index", 1)],
        )

        runner_kwargs = {"progress_callback": progress_callback}
        if max_attempts is not None:
            runner_kwargs["max_attempts"] = max_attempts
        runner = FileTranslationRunner(
            file_id, TranslationService(factory=self.factory, db=self.db), options, **runner_kwargs
        )
        runner.initialize([seg.source_text for seg in segments])
        try:
            return await runner.translate()
        finally:
            self._apply_tasks(runner, segments)

    def _apply_tasks(self, runner: FileTranslationRunner, segments: List[Segment]):
        """把顺序翻译的任务结果写回段落"""
        for task, segment in zip(runner.tasks, segments):
            try:
                if task.status == TaskStatus.COMPLETED:
                    meta = TranslationMeta(
                        provider=task.model_info.get("provider", ""),
                        model=task.model_info.get("model", ""),
                        usage=task.usage or TokenUsage(),
                    )
                    self.db.update_one(segment.id, {
                        "translation": task.translated_text,
                        "translated_length": len(task.translated_text or ""),
                        "status": SegmentStatus.TRANSLATED,
                        "translation_meta": meta,
                        "error": None,
                    })
                elif task.status == TaskStatus.FAILED:
                    self.db.update_one(segment.id, {
                        "status": SegmentStatus.TRANSLATION_FAILED,
                        "error": task.error,
                    })
            except PersistenceError as e:
                logger.error(f"写回段落 {segment.id} 失败: {e}")

    async def export_file(self, file_id: str, target_path: str) -> str:
        """导出译文：有对应写回器时保持原格式，否则导出为纯文本"""
        record = self._require_file(file_id)
        segments = self.db.find_many({"file_id": file_id}, sort=[("index", 1)])
        processor = self.processors.get_processor(record.file_type)

        if processor is not None and processor.supports_writing:
            await processor.write_translations(segments, record.path, target_path)
        else:
            logger.info(f"{record.file_type.value} 不支持原格式写回，导出为纯文本")
            await write_text_async(render_plain_text(segments), target_path)
        logger.info(f"文件 {file_id} 已导出到 {target_path}")
        return target_path

    def get_file_summary(self, file_id: str) -> FileTranslationSummary:
        self._require_file(file_id)
        segments = self.db.find_many({"file_id": file_id})
        return summarize_segments(file_id, segments)
