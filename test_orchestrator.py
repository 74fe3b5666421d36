"""
批量翻译编排与单段翻译服务测试
"""
import asyncio

import pytest

from conftest import FakeAdapter, echo_responder
from segtrans.errors import AIErrorCode, AIServiceError, ConfigurationError, PersistenceError
from segtrans.lib.segment_db import SegmentDatabase
from segtrans.models import FileRecord, FileType, Segment, SegmentStatus
from segtrans.translation import (
    BatchPlanner, PromptCodec, TokenEstimator, TranslationOptions, TranslationOrchestrator, TranslationService,
)
from segtrans.translation.orchestrator import EXCEEDS_TOKEN_LIMIT, MISSING_IN_RESPONSE


class CharEstimator(TokenEstimator):

    def estimate(self, text, model_hint=None):
        return len(text)


def _seed(db, texts, file_id="f1", statuses=None, metadata=None):
    db.insert_file(FileRecord(
        id=file_id, path="/tmp/doc.txt", file_type=FileType.TXT,
        metadata={"source_language": "en", "target_language": "zh"} if metadata is None else metadata,
    ))
    statuses = statuses or [SegmentStatus.PENDING] * len(texts)
    db.insert_many([
        Segment(file_id=file_id, index=i, source_text=t, status=s)
        for i, (t, s) in enumerate(zip(texts, statuses))
    ])


def _options(**kwargs):
    kwargs.setdefault("ai_config", "openai")
    return TranslationOptions(**kwargs)


def _run(db, factory, options=None, planner=None, file_id="f1"):
    orchestrator = TranslationOrchestrator(db, factory=factory, planner=planner)
    return asyncio.run(orchestrator.translate_multiple_segments(file_id, options or _options()))


def _by_index(db, file_id="f1"):
    return {s.index: s for s in db.find_many({"file_id": file_id})}


class TestTranslateMultipleSegments:

    def test_all_segments_translated(self, db, factory, fake_adapter):
        _seed(db, ["One", "Two", "Three"])

        outcome = _run(db, factory)

        assert outcome.success is True
        assert outcome.updated_count == 3
        assert outcome.failed_segments == []
        segments = _by_index(db)
        assert [segments[i].translation for i in range(3)] == ["ZH:One", "ZH:Two", "ZH:Three"]
        assert all(s.status == SegmentStatus.TRANSLATED for s in segments.values())
        assert segments[0].translated_length == len("ZH:One")
        assert segments[0].translation_meta.provider == "openai"
        assert segments[0].translation_meta.model == "fake-model"
        assert segments[0].translation_meta.usage.total_tokens == 15
        assert len(fake_adapter.calls) == 1

    def test_system_prompt_uses_file_languages(self, db, factory, fake_adapter):
        _seed(db, ["One"])
        _run(db, factory)
        system = fake_adapter.calls[0][0]
        assert system.role == "system"
        assert "from en to zh" in system.content

    def test_missing_marker_only_fails_that_segment(self, db, factory, fake_adapter):
        _seed(db, ["One", "Two", "Three"])
        fake_adapter.responder = lambda messages: "[SEG0]\n一\n\n[SEG2]\n三"

        outcome = _run(db, factory)

        assert outcome.success is False
        assert outcome.updated_count == 2
        assert [(f.index, f.reason) for f in outcome.failed_segments] == [(1, MISSING_IN_RESPONSE)]
        segments = _by_index(db)
        assert segments[0].status == SegmentStatus.TRANSLATED
        assert segments[2].status == SegmentStatus.TRANSLATED
        assert segments[1].status == SegmentStatus.TRANSLATION_FAILED
        assert segments[1].error == MISSING_IN_RESPONSE
        assert segments[1].translation is None

    def test_failed_batch_does_not_affect_others(self, db, factory, fake_adapter):
        """每段一个批次；中间批次 AI 调用失败，其它批次照常完成"""
        _seed(db, ["Segment A", "Segment B", "Segment C"])
        system_prompt = PromptCodec().build_system_prompt("en", "zh")
        planner = BatchPlanner(estimator=CharEstimator())

        def responder(messages):
            if "[SEG1]" in messages[-1].content:
                return AIServiceError(AIErrorCode.API_ERROR, "upstream 502", "openai", status_code=502)
            return echo_responder(messages)

        fake_adapter.responder = responder
        outcome = _run(db, factory, _options(max_input_tokens=len(system_prompt) + 30), planner)

        assert len(fake_adapter.calls) == 3
        assert outcome.updated_count == 2
        assert [f.index for f in outcome.failed_segments] == [1]
        segments = _by_index(db)
        assert segments[1].status == SegmentStatus.TRANSLATION_FAILED
        assert "upstream 502" in segments[1].error
        assert segments[0].status == SegmentStatus.TRANSLATED
        assert segments[2].status == SegmentStatus.TRANSLATED

    def test_unexpected_batch_exception_is_contained(self, db, factory, fake_adapter):
        _seed(db, ["One", "Two"])
        fake_adapter.responder = lambda messages: RuntimeError("adapter bug")

        outcome = _run(db, factory)

        assert outcome.success is False
        assert {f.index for f in outcome.failed_segments} == {0, 1}
        assert all(s.status == SegmentStatus.TRANSLATION_FAILED for s in _by_index(db).values())

    def test_snapshot_selects_pending_and_failed_only(self, db, factory, fake_adapter):
        _seed(db, ["One", "Two", "Three"], statuses=[
            SegmentStatus.CONFIRMED, SegmentStatus.TRANSLATION_FAILED, SegmentStatus.PENDING,
        ])

        outcome = _run(db, factory)

        assert outcome.updated_count == 2
        user = fake_adapter.calls[0][-1].content
        assert "[SEG0]" not in user
        assert user.index("[SEG1]") < user.index("[SEG2]")
        segments = _by_index(db)
        assert segments[0].status == SegmentStatus.CONFIRMED
        assert segments[0].translation is None

    def test_nothing_to_translate(self, db, factory, fake_adapter):
        _seed(db, ["One"], statuses=[SegmentStatus.TRANSLATED])
        outcome = _run(db, factory)
        assert outcome.success is True
        assert outcome.updated_count == 0
        assert fake_adapter.calls == []

    def test_oversized_segment_is_failed(self, db, factory, fake_adapter):
        _seed(db, ["short", "x" * 400])
        system_prompt = PromptCodec().build_system_prompt("en", "zh")
        planner = BatchPlanner(estimator=CharEstimator())

        outcome = _run(db, factory, _options(max_input_tokens=len(system_prompt) + 50), planner)

        assert [(f.index, f.reason) for f in outcome.failed_segments] == [(1, EXCEEDS_TOKEN_LIMIT)]
        segments = _by_index(db)
        assert segments[0].status == SegmentStatus.TRANSLATED
        assert segments[1].status == SegmentStatus.TRANSLATION_FAILED

    def test_missing_ai_config_is_fatal(self, db, factory, fake_adapter):
        _seed(db, ["One"])
        with pytest.raises(ConfigurationError):
            _run(db, factory, TranslationOptions(ai_config=None))
        assert fake_adapter.calls == []
        assert _by_index(db)[0].status == SegmentStatus.PENDING

    def test_missing_target_language_is_fatal(self, db, factory, fake_adapter):
        _seed(db, ["One"], metadata={})
        with pytest.raises(ConfigurationError):
            _run(db, factory)
        assert fake_adapter.calls == []

    def test_persistence_failure_demotes_single_segment(self, tmp_path, factory):
        class FlakyDatabase(SegmentDatabase):
            def update_one(self, segment_id, changes):
                if segment_id == "f1-1" and changes.get("status") == SegmentStatus.TRANSLATED:
                    raise PersistenceError("disk full")
                return super().update_one(segment_id, changes)

        db = FlakyDatabase(str(tmp_path / "flaky.db"))
        _seed(db, ["One", "Two", "Three"])

        outcome = _run(db, factory)

        assert outcome.updated_count == 2
        assert [(f.index, f.reason) for f in outcome.failed_segments] == [(1, "disk full")]
        segments = _by_index(db)
        assert segments[1].status == SegmentStatus.TRANSLATION_FAILED
        assert segments[0].status == SegmentStatus.TRANSLATED
        assert segments[2].status == SegmentStatus.TRANSLATED


class TestTranslationService:

    def test_translate_segment_success(self, db, factory):
        _seed(db, ["Hello"])
        factory.add_adapter("openai", FakeAdapter(responder=lambda messages: "你好"))
        service = TranslationService(factory=factory, db=db)

        segment = asyncio.run(service.translate_segment("f1-0", _options()))

        assert segment.status == SegmentStatus.TRANSLATED
        assert segment.translation == "你好"
        assert segment.translation_meta.model == "fake-model"

    def test_translate_segment_failure_is_recorded_and_raised(self, db, factory):
        _seed(db, ["Hello"])
        error = AIServiceError(AIErrorCode.TIMEOUT, "too slow", "openai")
        factory.add_adapter("openai", FakeAdapter(responder=lambda messages: error))
        service = TranslationService(factory=factory, db=db)

        with pytest.raises(AIServiceError):
            asyncio.run(service.translate_segment("f1-0", _options()))

        segment = db.find_by_id("f1-0")
        assert segment.status == SegmentStatus.TRANSLATION_FAILED
        assert "too slow" in segment.error

    def test_translate_text_requires_target_language(self, factory):
        service = TranslationService(factory=factory)
        with pytest.raises(ConfigurationError):
            asyncio.run(service.translate_text("Hello", TranslationOptions(ai_config="openai")))


class TestTokenEstimationModel:

    def test_resolved_model_reaches_estimator(self, db, factory, fake_adapter):
        """分批估算使用实际解析出的模型名"""
        hints = []

        class RecordingEstimator(CharEstimator):
            def estimate(self, text, model_hint=None):
                hints.append(model_hint)
                return super().estimate(text, model_hint)

        _seed(db, ["One", "Two"])
        _run(db, factory, _options(model="custom-model"), BatchPlanner(estimator=RecordingEstimator()))

        assert hints and set(hints) == {"custom-model"}
        assert fake_adapter.calls
