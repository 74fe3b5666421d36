"""
XLIFF 1.2 处理器（含 memoQ 变体）

提取：
- 要求 file/body 结构，缺失时整个提取失败
- trans-unit 缺少 id 或 source 时跳过并记录警告
- 行内标记（g/x/bx/ex/ph/bpt/ept/it）序列化为标记片段保留，其余元素递归取文本
- 外部状态（target@state，memoQ 模式下为 trans-unit@m:state）经固定映射表转换为内部状态

写回：
- 按 trans-unit id 定位，仅修改 target 节点与状态属性，其余节点与格式保持原样
- 译文按标记片段解析后导入；解析失败时降级为纯文本节点
"""
import copy
import logging
import re
from typing import List, Dict, Any, Optional

from lxml import etree

from ..errors import DocumentParseError
from ..models import Segment, SegmentStatus
from ..utils import read_bytes_async, write_bytes_async
from .base import FileProcessor, ExtractionResult, PlainText, MarkupFragment, InlinePart, render_inline

logger = logging.getLogger(__name__)

XLIFF_NS = "urn:oasis:names:tc:xliff:document:1.2"
MEMOQ_NS = "http://www.memoq.com/memoq/xliff"

INLINE_TAGS = {"g", "x", "bx", "ex", "ph", "bpt", "ept", "it", "mrk", "sub"}

STATE_TO_STATUS: Dict[str, SegmentStatus] = {
    "new": SegmentStatus.PENDING,
    "needs-translation": SegmentStatus.PENDING,
    "needs-adaptation": SegmentStatus.PENDING,
    "needs-l10n": SegmentStatus.PENDING,
    "translated": SegmentStatus.TRANSLATED,
    "reviewed": SegmentStatus.REVIEW_COMPLETED,
    "signed-off": SegmentStatus.CONFIRMED,
    "final": SegmentStatus.CONFIRMED,
    "confirmed": SegmentStatus.CONFIRMED,
}

# target@state 使用的标准状态
GENERIC_STATE_BY_STATUS: Dict[SegmentStatus, str] = {
    SegmentStatus.TRANSLATED: "translated",
    SegmentStatus.REVIEW_COMPLETED: "reviewed",
    SegmentStatus.CONFIRMED: "final",
}

# memoQ trans-unit@m:state 使用的状态
VENDOR_STATE_BY_STATUS: Dict[SegmentStatus, str] = {
    SegmentStatus.TRANSLATED: "translated",
    SegmentStatus.REVIEW_COMPLETED: "reviewed",
    SegmentStatus.CONFIRMED: "confirmed",
}

DEFAULT_EXTERNAL_STATE = "needs-translation"

# 引号、尖括号、& 与控制字符不允许出现在锚点中
_UNSAFE_ANCHOR = re.compile(r"[\"'<>&\x00-\x1f]")


def map_external_state(state: Optional[str], has_target_text: bool) -> SegmentStatus:
    """外部状态 -> 内部状态"""
    if not state:
        return SegmentStatus.TRANSLATED if has_target_text else SegmentStatus.PENDING
    normalized = state.strip().lower()
    if normalized.startswith("needs-review"):
        return SegmentStatus.TRANSLATED
    status = STATE_TO_STATUS.get(normalized)
    if status is None:
        logger.warning(f"未知的 XLIFF 状态 '{state}'，按 pending 处理")
        return SegmentStatus.PENDING
    return status


def is_safe_anchor(anchor: Any) -> bool:
    return isinstance(anchor, str) and bool(anchor) and not _UNSAFE_ANCHOR.search(anchor)


class XliffProcessor(FileProcessor):
    """XLIFF 1.2 提取与写回"""

    supports_writing = True

    def __init__(self, is_memoq: bool = False):
        self.is_memoq = is_memoq

    # ==================== 解析辅助 ====================

    def _parse(self, data: bytes, file_path: str) -> etree._Element:
        parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False, no_network=True)
        try:
            return etree.fromstring(data, parser)
        except etree.XMLSyntaxError as e:
            raise DocumentParseError(f"XLIFF 解析失败 {file_path}: {e}") from e

    @staticmethod
    def _tag(ns: Optional[str], name: str) -> str:
        return f"{{{ns}}}{name}" if ns else name

    def _namespace(self, root: etree._Element) -> Optional[str]:
        return etree.QName(root).namespace

    def _read_state(self, unit: etree._Element, target: Optional[etree._Element]) -> Optional[str]:
        state = None
        if self.is_memoq:
            state = unit.get(f"{{{MEMOQ_NS}}}state")
        if not state and target is not None:
            state = target.get("state")
        return state

    # ==================== 提取 ====================

    async def extract_segments(self, file_path: str, file_id: str,
                               options: Optional[Dict[str, Any]] = None) -> ExtractionResult:
        data = await read_bytes_async(file_path)
        root = self._parse(data, file_path)
        ns = self._namespace(root)

        files = root.findall(self._tag(ns, "file"))
        bodies = [(f, f.find(self._tag(ns, "body"))) for f in files]
        bodies = [(f, b) for f, b in bodies if b is not None]
        if not bodies:
            raise DocumentParseError(f"无效的 XLIFF 结构，缺少 file/body: {file_path}")

        first_file = bodies[0][0]
        metadata = {
            "original": first_file.get("original"),
            "source_language": first_file.get("source-language"),
            "target_language": first_file.get("target-language"),
            "datatype": first_file.get("datatype"),
            "is_memoq": self.is_memoq,
        }

        segments: List[Segment] = []
        for file_el, body in bodies:
            for unit in body.iter(self._tag(ns, "trans-unit")):
                segment = self._unit_to_segment(unit, ns, file_id, len(segments), file_el.get("original"))
                if segment is not None:
                    segments.append(segment)

        logger.info(f"从 {file_path} 提取 {len(segments)} 个段落")
        return ExtractionResult(segments=segments, metadata=metadata)

    def _unit_to_segment(self, unit: etree._Element, ns: Optional[str], file_id: str,
                         index: int, original: Optional[str]) -> Optional[Segment]:
        unit_id = unit.get("id")
        source = unit.find(self._tag(ns, "source"))
        if not unit_id or source is None:
            logger.warning(f"跳过缺少 id 或 source 的 trans-unit (line {unit.sourceline})")
            return None

        source_text = render_inline(extract_inline(source)).strip()
        if not source_text:
            logger.warning(f"跳过 source 为空的 trans-unit {unit_id}")
            return None

        target = unit.find(self._tag(ns, "target"))
        target_text = render_inline(extract_inline(target)).strip() if target is not None else ""
        state = self._read_state(unit, target)

        return Segment(
            file_id=file_id,
            index=index,
            source_text=source_text,
            translation=target_text or None,
            status=map_external_state(state, bool(target_text)),
            metadata={"unit_id": unit_id, "state": state, "original": original},
        )

    # ==================== 写回 ====================

    async def write_translations(self, segments: List[Segment], original_path: str,
                                 target_path: str, options: Optional[Dict[str, Any]] = None):
        data = await read_bytes_async(original_path)
        root = self._parse(data, original_path)
        ns = self._namespace(root)

        units = {}
        for unit in root.iter(self._tag(ns, "trans-unit")):
            unit_id = unit.get("id")
            if unit_id and unit_id not in units:
                units[unit_id] = unit

        written = 0
        for segment in sorted(segments, key=lambda s: s.index):
            anchor = segment.metadata.get("unit_id")
            if not is_safe_anchor(anchor):
                logger.warning(f"段落 {segment.id} 的锚点无效或不安全 ({anchor!r})，跳过")
                continue
            unit = units.get(anchor)
            if unit is None:
                logger.warning(f"未找到 trans-unit {anchor}，跳过段落 {segment.id}")
                continue
            if self._write_unit(unit, ns, segment):
                written += 1

        tree = root.getroottree()
        encoding = tree.docinfo.encoding or "UTF-8"
        output = etree.tostring(tree, xml_declaration=True, encoding=encoding)
        await write_bytes_async(output, target_path)
        logger.info(f"写回 {written}/{len(segments)} 个段落到 {target_path}")

    def _write_unit(self, unit: etree._Element, ns: Optional[str], segment: Segment) -> bool:
        target = unit.find(self._tag(ns, "target"))
        if target is None:
            source = unit.find(self._tag(ns, "source"))
            if source is None:
                logger.warning(f"trans-unit {unit.get('id')} 缺少 source，跳过")
                return False
            target = etree.Element(self._tag(ns, "target"))
            target.tail = source.tail
            following = source.getnext()
            if following is not None and isinstance(following, etree._Comment):
                target.tail = following.tail
                unit.remove(following)
            source.addnext(target)

        for child in list(target):
            target.remove(child)
        target.text = None

        fill_target(target, segment.output_text or "", ns)

        target.set("state", GENERIC_STATE_BY_STATUS.get(segment.status, DEFAULT_EXTERNAL_STATE))
        if self.is_memoq:
            unit.set(f"{{{MEMOQ_NS}}}state", VENDOR_STATE_BY_STATUS.get(segment.status, DEFAULT_EXTERNAL_STATE))
        return True


def extract_inline(element: etree._Element) -> List[InlinePart]:
    """提取元素内容：文本节点拼接，行内标记保留为片段"""
    parts: List[InlinePart] = []
    if element.text:
        parts.append(PlainText(element.text))
    for child in element:
        if isinstance(child.tag, str):
            if etree.QName(child).localname in INLINE_TAGS:
                parts.append(MarkupFragment(serialize_fragment(child)))
            else:
                parts.extend(extract_inline(child))
        if child.tail:
            parts.append(PlainText(child.tail))
    return parts


def serialize_fragment(element: etree._Element) -> str:
    """序列化行内元素，去掉 XLIFF 命名空间前缀/声明"""
    fragment = copy.deepcopy(element)
    fragment.tail = None
    for el in fragment.iter():
        if isinstance(el.tag, str):
            el.tag = etree.QName(el).localname
    etree.cleanup_namespaces(fragment)
    return etree.tostring(fragment, encoding="unicode")


def fill_target(target: etree._Element, text: str, ns: Optional[str]):
    """将译文作为标记片段导入 target，解析失败时降级为纯文本"""
    if not text:
        return
    wrapper_open = f'<wrapper xmlns="{ns}">' if ns else "<wrapper>"
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        wrapper = etree.fromstring(f"{wrapper_open}{text}</wrapper>".encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        logger.warning(f"译文不是合法的标记片段，按纯文本写入: {e}")
        target.text = text
        return
    target.text = wrapper.text
    for child in list(wrapper):
        target.append(child)
