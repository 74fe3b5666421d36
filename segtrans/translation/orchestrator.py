"""
批量翻译编排

对文件中所有 pending / translation_failed 段落取一次快照，按 token 预算分批，
所有批次并发执行（settle-all：单个批次失败不影响其它批次），结果逐段写回。
AI 调用错误与存储错误只会把对应段落标记为 translation_failed，不向上抛出；
只有配置错误会终止整个调用。
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import AIServiceError, PersistenceError
from ..lib.adapters import AIServiceFactory, BaseAIAdapter, ChatMessage
from ..lib.segment_db import SegmentDatabase
from ..models import Segment, SegmentStatus, TranslationMeta
from .batching import Batch, BatchPlanner
from .prompt_codec import PromptCodec
from .service import TranslationOptions, resolve_adapter

logger = logging.getLogger(__name__)

MISSING_IN_RESPONSE = "missing in AI response"
EXCEEDS_TOKEN_LIMIT = "segment exceeds token limit"


@dataclass
class FailedSegment:
    segment_id: str
    index: int
    reason: str


@dataclass
class BatchTranslationOutcome:
    success: bool
    updated_count: int = 0
    failed_segments: List[FailedSegment] = field(default_factory=list)


@dataclass
class _BatchResult:
    updated: int = 0
    failed: List[FailedSegment] = field(default_factory=list)


class TranslationOrchestrator:

    def __init__(self, db: SegmentDatabase, factory: Optional[AIServiceFactory] = None,
                 planner: Optional[BatchPlanner] = None, codec: Optional[PromptCodec] = None):
        self.db = db
        self.factory = factory
        self.codec = codec or PromptCodec()
        self.planner = planner or BatchPlanner(codec=self.codec)

    async def translate_multiple_segments(self, file_id: str,
                                          options: TranslationOptions) -> BatchTranslationOutcome:
        file_record = self.db.get_file(file_id)
        options = options.with_file_defaults(file_record.metadata if file_record else None)
        adapter, model = resolve_adapter(options, self.factory)

        # 固定快照，运行过程中不再重新查询
        snapshot = self.db.find_many(
            {"file_id": file_id, "status": [SegmentStatus.PENDING, SegmentStatus.TRANSLATION_FAILED]},
            sort=[("index", 1)],
        )
        if not snapshot:
            logger.info(f"文件 {file_id} 没有待翻译段落")
            return BatchTranslationOutcome(success=True)

        system_prompt = self.codec.build_system_prompt(
            options.source_language or "the source language", options.target_language, options.domain
        )
        plan = self.planner.plan(snapshot, system_prompt, options.max_input_tokens, model_hint=model)

        failed: List[FailedSegment] = []
        for segment in plan.dropped:
            self._mark_failed(segment, EXCEEDS_TOKEN_LIMIT, failed)

        logger.info(f"文件 {file_id}: {len(snapshot)} 个段落，{len(plan.batches)} 个批次并发翻译 (model={model})")
        results = await asyncio.gather(
            *[self._translate_batch(adapter, model, system_prompt, batch, options, i)
              for i, batch in enumerate(plan.batches)],
            return_exceptions=True,
        )

        updated = 0
        for i, (batch, result) in enumerate(zip(plan.batches, results)):
            if isinstance(result, BaseException):
                logger.error(f"批次 {i} 处理失败: {result}")
                for segment in batch.segments:
                    self._mark_failed(segment, str(result) or type(result).__name__, failed)
                continue
            updated += result.updated
            failed.extend(result.failed)

        outcome = BatchTranslationOutcome(success=not failed, updated_count=updated, failed_segments=failed)
        logger.info(f"文件 {file_id} 批量翻译完成: 成功 {updated}，失败 {len(failed)}")
        return outcome

    async def _translate_batch(self, adapter: BaseAIAdapter, model: str, system_prompt: str,
                               batch: Batch, options: TranslationOptions, batch_index: int) -> _BatchResult:
        result = _BatchResult()
        self._mark_processing(batch.segments)

        messages = [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=self.codec.encode(batch.segments)),
        ]
        try:
            response = await adapter.execute_chat_completion(
                messages, model=model, temperature=options.temperature
            )
        except AIServiceError as e:
            logger.error(f"批次 {batch_index} AI 调用失败 ({len(batch.segments)} 个段落): {e}")
            for segment in batch.segments:
                self._mark_failed(segment, str(e), result.failed)
            return result

        decoded = self.codec.decode(response.content)
        meta = TranslationMeta(provider=adapter.provider, model=response.model, usage=response.usage)

        for segment in batch.segments:
            translation = decoded.get(segment.index)
            if not translation:
                logger.warning(f"段落 {segment.id} 在 AI 响应中缺失")
                self._mark_failed(segment, MISSING_IN_RESPONSE, result.failed)
                continue
            try:
                self.db.update_one(segment.id, {
                    "translation": translation,
                    "translated_length": len(translation),
                    "status": SegmentStatus.TRANSLATED,
                    "translation_meta": meta,
                    "error": None,
                })
            except PersistenceError as e:
                logger.error(f"保存段落 {segment.id} 失败: {e}")
                self._mark_failed(segment, str(e), result.failed)
                continue
            result.updated += 1

        logger.info(f"批次 {batch_index} 完成: {result.updated}/{len(batch.segments)}")
        return result

    def _mark_processing(self, segments: List[Segment]):
        for segment in segments:
            try:
                self.db.update_one(segment.id, {"status": SegmentStatus.PROCESSING})
            except PersistenceError as e:
                logger.warning(f"标记段落 {segment.id} 为 processing 失败: {e}")

    def _mark_failed(self, segment: Segment, reason: str, failed: List[FailedSegment]):
        failed.append(FailedSegment(segment_id=segment.id, index=segment.index, reason=reason))
        try:
            self.db.update_one(segment.id, {"status": SegmentStatus.TRANSLATION_FAILED, "error": reason})
        except PersistenceError as e:
            logger.error(f"标记段落 {segment.id} 失败状态时出错: {e}")
