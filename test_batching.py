"""
分批、提示词编解码与 token 估算测试
"""
import logging

import pytest

from segtrans.models import Segment
from segtrans.translation import BatchPlanner, PromptCodec, TokenEstimator
from segtrans.translation import tokens as tokens_module


class CharEstimator(TokenEstimator):
    """每个字符计 1 个 token，便于精确断言"""

    def estimate(self, text, model_hint=None):
        return len(text)


def _segments(texts, file_id="f1"):
    return [Segment(file_id=file_id, index=i, source_text=t) for i, t in enumerate(texts)]


class TestPromptCodec:

    def test_encode(self):
        codec = PromptCodec()
        encoded = codec.encode(_segments(["Hello", "World"]))
        assert encoded == "[SEG0]\nHello\n\n[SEG1]\nWorld"

    def test_decode_n_markers(self):
        """N 个标记解析出 N 条，内容去除首尾空白"""
        codec = PromptCodec()
        n = 12
        response = "\n".join(f"[SEG{i}]\n  translation {i}  \n" for i in range(n))
        decoded = codec.decode(response)
        assert decoded == {i: f"translation {i}" for i in range(n)}

    def test_missing_marker_is_absent(self):
        decoded = PromptCodec().decode("[SEG0]\nA\n\n[SEG2]\nC")
        assert decoded == {0: "A", 2: "C"}
        assert 1 not in decoded

    def test_text_before_first_marker_is_ignored(self):
        assert PromptCodec().decode("Sure, here you go:\n[SEG3] 你好") == {3: "你好"}

    def test_duplicate_marker_keeps_last(self, caplog):
        with caplog.at_level(logging.WARNING):
            decoded = PromptCodec().decode("[SEG0] first\n[SEG0] second")
        assert decoded == {0: "second"}
        assert caplog.records

    def test_decode_empty(self):
        assert PromptCodec().decode("") == {}

    def test_system_prompt_mentions_languages(self):
        prompt = PromptCodec().build_system_prompt("English", "Chinese", domain="legal")
        assert "from English to Chinese" in prompt
        assert "[SEG#]" in prompt
        assert "legal" in prompt


class TestBatchPlanner:

    def _planner(self):
        return BatchPlanner(estimator=CharEstimator())

    def test_coverage_and_token_bound(self):
        """所有批次的并集等于输入减去被丢弃的段落，且每批不超过上限"""
        texts = ["x" * n for n in (5, 30, 12, 70, 3, 41, 9, 150, 22, 60, 1, 18)]
        segments = _segments(texts)
        system_prompt = "s" * 20
        max_tokens = 100
        planner = self._planner()

        plan = planner.plan(segments, system_prompt, max_tokens)

        covered = [seg.id for batch in plan.batches for seg in batch.segments]
        dropped = [seg.id for seg in plan.dropped]
        assert sorted(covered + dropped) == sorted(s.id for s in segments)
        assert len(set(covered)) == len(covered)
        for batch in plan.batches:
            total = len(system_prompt) + sum(len(planner.codec.encode_block(s)) for s in batch.segments)
            assert total <= max_tokens
            assert batch.token_count == total

    def test_order_is_preserved(self):
        segments = _segments(["a" * 30, "b" * 30, "c" * 30, "d" * 30])
        plan = self._planner().plan(segments, "sys", 80)
        flattened = [seg.index for batch in plan.batches for seg in batch.segments]
        assert flattened == [0, 1, 2, 3]
        assert len(plan.batches) == 2

    def test_oversized_segment_is_dropped(self, caplog):
        segments = _segments(["short", "y" * 500, "also short"])
        with caplog.at_level(logging.ERROR):
            plan = self._planner().plan(segments, "sys", 100)

        assert [s.index for s in plan.dropped] == [1]
        assert [s.index for b in plan.batches for s in b.segments] == [0, 2]
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    def test_system_prompt_over_limit_drops_everything(self):
        segments = _segments(["a", "b"])
        plan = self._planner().plan(segments, "s" * 200, 100)
        assert plan.batches == []
        assert len(plan.dropped) == 2

    def test_empty_input(self):
        plan = self._planner().plan([], "sys", 100)
        assert plan.batches == [] and plan.dropped == []


class TestTokenEstimator:

    def test_fallback_on_unknown_model(self, monkeypatch):
        calls = []

        def broken(model):
            calls.append(model)
            raise KeyError(model)

        monkeypatch.setattr(tokens_module.tiktoken, "encoding_for_model", broken)
        estimator = TokenEstimator("no-such-model")

        assert estimator.estimate("abcdefghi") == 3
        assert estimator.estimate("abcd") == 1
        assert calls == ["no-such-model"]

    def test_uses_tokenizer_when_available(self, monkeypatch):
        class WordEncoder:
            def encode(self, text, disallowed_special=()):
                return text.split()

        monkeypatch.setattr(tokens_module.tiktoken, "encoding_for_model", lambda model: WordEncoder())
        estimator = TokenEstimator("gpt-4")
        assert estimator.estimate("one two three") == 3

    def test_empty_text(self):
        assert TokenEstimator().estimate("") == 0

    @pytest.mark.parametrize("text,expected", [("a", 1), ("abcd", 1), ("abcde", 2)])
    def test_fallback_estimate(self, text, expected):
        assert tokens_module.fallback_estimate(text) == expected

    def test_unknown_hint_uses_default_tokenizer(self, monkeypatch):
        class WordEncoder:
            def encode(self, text, disallowed_special=()):
                return text.split()

        def encoding_for_model(model):
            if model != "gpt-4":
                raise KeyError(model)
            return WordEncoder()

        monkeypatch.setattr(tokens_module.tiktoken, "encoding_for_model", encoding_for_model)
        estimator = TokenEstimator("gpt-4")
        assert estimator.estimate("one two three four five", model_hint="grok-3-latest") == 5


class RecordingEstimator(CharEstimator):

    def __init__(self):
        super().__init__()
        self.hints = []

    def estimate(self, text, model_hint=None):
        self.hints.append(model_hint)
        return super().estimate(text, model_hint)


class TestPlannerModelHint:

    def test_plan_hint_overrides_planner_default(self):
        estimator = RecordingEstimator()
        planner = BatchPlanner(estimator=estimator, model_hint="gpt-4")

        planner.plan(_segments(["a", "b"]), "sys", 100, model_hint="grok-3-latest")

        assert estimator.hints == ["grok-3-latest"] * 3

    def test_planner_default_hint(self):
        estimator = RecordingEstimator()
        BatchPlanner(estimator=estimator, model_hint="gpt-4o-mini").plan(_segments(["a"]), "sys", 100)
        assert set(estimator.hints) == {"gpt-4o-mini"}
