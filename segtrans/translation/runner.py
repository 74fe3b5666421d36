"""
顺序翻译运行器

逐段调用单段翻译，每段失败前最多尝试 max_attempts 次。
某段最终失败时记录到任务上并继续后续段落；全部处理完后若有失败，
默认抛出 SegmentTranslationError（raise_on_failure=False 时只返回进度）。
取消是协作式的：只在段落之间检查，不会中断正在进行的调用，
取消后返回的结果会被丢弃。
"""
import time
import asyncio
import logging
from typing import Callable, List, Optional

from ..config import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY
from ..errors import ConfigurationError, SegmentTranslationError
from ..lib.adapters import TranslationResponse
from ..models import TaskStatus, TokenUsage, TranslationProgress, TranslationTask
from .service import TranslationOptions, TranslationService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TranslationTask, TranslationProgress], None]


class FileTranslationRunner:

    def __init__(
        self,
        file_id: str,
        service: TranslationService,
        options: TranslationOptions,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        raise_on_failure: bool = True,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.file_id = file_id
        self.service = service
        self.options = options
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.raise_on_failure = raise_on_failure
        self.progress_callback = progress_callback

        self.tasks: List[TranslationTask] = []
        self.progress = TranslationProgress(file_id=file_id)
        self.usage = TokenUsage()
        self.processing_time = 0.0
        self._cancelled = False

    def initialize(self, texts: List[str]) -> List[TranslationTask]:
        self.tasks = [
            TranslationTask(id=f"{self.file_id}-{i}", index=i, source_text=text)
            for i, text in enumerate(texts)
        ]
        self.progress = TranslationProgress(file_id=self.file_id, total_segments=len(self.tasks))
        self.usage = TokenUsage()
        self._cancelled = False
        logger.info(f"文件 {self.file_id} 初始化 {len(self.tasks)} 个翻译任务")
        return self.tasks

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    async def translate(self) -> TranslationProgress:
        if not self._cancelled:
            self.progress.status = TaskStatus.PROCESSING
            self.progress.refresh()

        for task in self.tasks:
            if self._cancelled:
                logger.info(f"文件 {self.file_id} 已取消，停止后续段落")
                break
            if task.status != TaskStatus.PENDING:
                continue
            await self._process_task(task)
            if self.progress_callback:
                self.progress_callback(task, self.progress)

        failed_ids = [t.id for t in self.tasks if t.status == TaskStatus.FAILED]
        if self._cancelled:
            self.progress.status = TaskStatus.CANCELLED
        elif failed_ids:
            self.progress.status = TaskStatus.FAILED
        else:
            self.progress.status = TaskStatus.COMPLETED
        self.progress.refresh()

        logger.info(
            f"文件 {self.file_id} 顺序翻译结束: 完成 {self.progress.completed_segments}，"
            f"失败 {self.progress.failed_segments}，状态 {self.progress.status.value}"
        )
        if failed_ids and self.raise_on_failure and not self._cancelled:
            first_error = next(t.error for t in self.tasks if t.status == TaskStatus.FAILED)
            raise SegmentTranslationError(
                f"{len(failed_ids)} 个段落翻译失败，首个错误: {first_error}", failed_ids
            )
        return self.progress

    def cancel(self):
        self._cancelled = True
        for task in self.tasks:
            if task.status != TaskStatus.COMPLETED:
                task.status = TaskStatus.CANCELLED
                task.updated_at = time.time()
        self.progress.status = TaskStatus.CANCELLED
        self.progress.last_updated = time.time()
        logger.info(f"文件 {self.file_id} 的翻译已取消")

    async def _process_task(self, task: TranslationTask):
        task.status = TaskStatus.PROCESSING
        task.start_time = task.updated_at = time.time()

        try:
            response = await self._translate_with_retry(task)
        except ConfigurationError:
            raise
        except Exception as e:
            if self._cancelled:
                return
            task.status = TaskStatus.FAILED
            task.error = str(e)
            task.end_time = task.updated_at = time.time()
            self.progress.failed_segments += 1
            self.progress.processed_segments += 1
            self.progress.refresh()
            logger.error(f"任务 {task.id} 翻译失败: {e}")
            return

        if self._cancelled:
            logger.info(f"任务 {task.id} 在取消后返回，结果已丢弃")
            return

        task.status = TaskStatus.COMPLETED
        task.progress = 100
        task.translated_text = response.translated_text
        task.model_info = dict(response.model_info or {})
        task.usage = response.token_count
        task.end_time = task.updated_at = time.time()
        self.usage.add(response.token_count)
        self.processing_time += response.processing_time or 0.0
        self.progress.completed_segments += 1
        self.progress.processed_segments += 1
        self.progress.refresh()

    async def _translate_with_retry(self, task: TranslationTask) -> TranslationResponse:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            try:
                return await self.service.translate_text(task.source_text, self.options)
            except ConfigurationError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"任务 {task.id} 尝试 {attempt + 1}/{self.max_attempts} 失败: {e}")
                if self._cancelled or attempt >= self.max_attempts - 1:
                    break
                delay = self.retry_delay * (2 ** attempt)  # 指数退避
                if delay > 0:
                    await asyncio.sleep(delay)
        raise last_error
