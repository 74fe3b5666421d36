"""
按 token 预算分批
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import Segment
from .prompt_codec import PromptCodec
from .tokens import TokenEstimator

logger = logging.getLogger(__name__)


@dataclass
class Batch:
    segments: List[Segment] = field(default_factory=list)
    token_count: int = 0


@dataclass
class BatchPlan:
    batches: List[Batch]
    dropped: List[Segment]


class BatchPlanner:
    """贪心、保序的分批：

    running 初始为系统提示词的 token 数；依次加入段落，超出上限时关闭当前批次，
    以 系统提示词 + 当前段落 开启新批次。单个段落加上系统提示词就超出上限时直接丢弃。
    """

    def __init__(self, estimator: Optional[TokenEstimator] = None,
                 codec: Optional[PromptCodec] = None, model_hint: Optional[str] = None):
        self.estimator = estimator or TokenEstimator()
        self.codec = codec or PromptCodec()
        self.model_hint = model_hint

    def plan(self, ordered_segments: List[Segment], system_prompt_text: str,
             max_input_tokens: int, model_hint: Optional[str] = None) -> BatchPlan:
        model_hint = model_hint or self.model_hint
        system_tokens = self.estimator.estimate(system_prompt_text, model_hint)
        batches: List[Batch] = []
        dropped: List[Segment] = []
        current = Batch(token_count=system_tokens)

        for segment in ordered_segments:
            segment_tokens = self.estimator.estimate(self.codec.encode_block(segment), model_hint)
            if system_tokens + segment_tokens > max_input_tokens:
                logger.error(
                    f"段落 {segment.id} (index {segment.index}) 需要 {segment_tokens} tokens，"
                    f"加上系统提示词 {system_tokens} 超出上限 {max_input_tokens}，已丢弃"
                )
                dropped.append(segment)
                continue

            if current.segments and current.token_count + segment_tokens > max_input_tokens:
                batches.append(current)
                current = Batch(token_count=system_tokens)

            current.segments.append(segment)
            current.token_count += segment_tokens

        if current.segments:
            batches.append(current)

        logger.info(
            f"分批完成: {len(ordered_segments)} 个段落 -> {len(batches)} 个批次，丢弃 {len(dropped)} 个"
        )
        return BatchPlan(batches=batches, dropped=dropped)
