"""
数据模型定义

Segment 是翻译的最小单元；TranslationTask / TranslationProgress 仅在顺序翻译运行期间存在于内存中。
"""
import time
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum


class SegmentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    TRANSLATED = "translated"
    TRANSLATION_FAILED = "translation_failed"
    REVIEW_COMPLETED = "review_completed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class TaskStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileType(Enum):
    TXT = "txt"
    XLIFF = "xliff"
    MEMOQ_XLIFF = "memoq_xliff"


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: Optional["TokenUsage"]):
        if other is None:
            return
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TokenUsage":
        if not data:
            return cls()
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class TranslationMeta:
    """最近一次成功翻译的元信息"""
    provider: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    translated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TranslationMeta"]:
        if not data:
            return None
        return cls(
            provider=data.get("provider", ""),
            model=data.get("model", ""),
            usage=TokenUsage.from_dict(data.get("usage")),
            translated_at=data.get("translated_at") or 0.0,
        )


@dataclass
class Segment:
    """翻译段落

    index 在文件内唯一，提取后不再改变，同时决定文档顺序与分批顺序。
    metadata 保存格式相关的结构锚点（如 XLIFF trans-unit id）和原始外部状态。
    """
    file_id: str
    index: int
    source_text: str
    id: Optional[str] = None
    translation: Optional[str] = None
    final_text: Optional[str] = None
    status: SegmentStatus = SegmentStatus.PENDING
    source_length: int = 0
    translated_length: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    translation_meta: Optional[TranslationMeta] = None
    error: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self):
        if self.id is None:
            self.id = f"{self.file_id}-{self.index}"
        if not self.source_length:
            self.source_length = len(self.source_text)
        if self.translation and not self.translated_length:
            self.translated_length = len(self.translation)
        if self.created_at == 0:
            self.created_at = int(time.time())
        if self.updated_at == 0:
            self.updated_at = self.created_at

    @property
    def output_text(self) -> Optional[str]:
        """导出时使用的文本：finalText 优先于 translation"""
        if self.final_text is not None:
            return self.final_text
        return self.translation


@dataclass
class FileRecord:
    id: str
    path: str
    file_type: FileType
    name: str = ""
    segment_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self):
        if self.created_at == 0:
            self.created_at = int(time.time())
        if self.updated_at == 0:
            self.updated_at = self.created_at


@dataclass
class TranslationTask:
    """顺序翻译中的单个任务（内存态）"""
    id: str
    index: int
    source_text: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0  # 0-100
    translated_text: Optional[str] = None
    model_info: Dict[str, str] = field(default_factory=dict)
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    start_time: Optional[float] = None
    end_time: Optional[float] = None


@dataclass
class TranslationProgress:
    file_id: str
    total_segments: int = 0
    processed_segments: int = 0
    completed_segments: int = 0
    failed_segments: int = 0
    progress: int = 0  # 0-100
    status: TaskStatus = TaskStatus.PENDING
    last_updated: float = field(default_factory=time.time)

    def refresh(self):
        if self.total_segments:
            self.progress = round(self.processed_segments / self.total_segments * 100)
        else:
            self.progress = 0
        self.last_updated = time.time()


@dataclass
class FileTranslationSummary:
    file_id: str
    total: int
    counts: Dict[str, int]
    state: str

    @property
    def translated(self) -> int:
        done = (SegmentStatus.TRANSLATED, SegmentStatus.REVIEW_COMPLETED, SegmentStatus.CONFIRMED)
        return sum(self.counts.get(s.value, 0) for s in done)

    @property
    def failed(self) -> int:
        return self.counts.get(SegmentStatus.TRANSLATION_FAILED.value, 0)


def summarize_segments(file_id: str, segments: List[Segment]) -> FileTranslationSummary:
    """从段落状态推导文件整体状态（读取时计算，不存储计数器）"""
    counts: Dict[str, int] = {}
    for seg in segments:
        counts[seg.status.value] = counts.get(seg.status.value, 0) + 1

    total = len(segments)
    summary = FileTranslationSummary(file_id=file_id, total=total, counts=counts, state="not_translated")

    if total == 0:
        return summary
    if counts.get(SegmentStatus.CONFIRMED.value, 0) == total:
        summary.state = "confirmed"
    elif summary.translated == total:
        summary.state = "translated"
    elif summary.translated > 0:
        summary.state = "partially_translated"
    elif summary.failed > 0:
        summary.state = "failed"
    return summary
