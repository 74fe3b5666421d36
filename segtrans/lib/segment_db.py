"""
SQLite 段落数据库模块
用于存储文件与翻译段落，提供 find/update/insert 等基础操作
"""
import sqlite3
import logging
import json
import time
from typing import List, Dict, Any, Optional, Tuple, Sequence
from pathlib import Path

from ..errors import PersistenceError
from ..models import Segment, SegmentStatus, TranslationMeta, FileRecord, FileType

logger = logging.getLogger(__name__)

_SEGMENT_COLUMNS = [
    "id", "file_id", "idx", "source_text", "translation", "final_text", "status",
    "source_length", "translated_length", "metadata", "translation_meta", "error",
    "created_at", "updated_at",
]

# 过滤/排序字段 -> 列名
_FIELD_COLUMNS = {
    "id": "id",
    "file_id": "file_id",
    "index": "idx",
    "status": "status",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

_UPDATABLE = {
    "translation", "final_text", "status", "translated_length",
    "metadata", "translation_meta", "error",
}


class SegmentDatabase:
    """段落数据库管理器"""

    def __init__(self, db_path: str = "segtrans.db"):
        self.db_path = db_path
        self._ensure_db_dir()
        self._init_database()
        # 启用WAL和busy_timeout，减少并发锁冲突
        try:
            with sqlite3.connect(self.db_path, timeout=30) as conn:
                cursor = conn.cursor()
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA synchronous=NORMAL;")
                cursor.execute("PRAGMA busy_timeout=5000;")
                conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"设置SQLite并发参数失败: {e}")

    def _ensure_db_dir(self):
        """确保数据库目录存在"""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30)

    def _init_database(self):
        """初始化数据库表"""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS files (
                    id TEXT PRIMARY KEY,
                    path TEXT NOT NULL,
                    name TEXT DEFAULT '',
                    file_type TEXT NOT NULL,
                    segment_count INTEGER DEFAULT 0,
                    metadata TEXT DEFAULT '{}',
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS segments (
                    id TEXT PRIMARY KEY,
                    file_id TEXT NOT NULL,
                    idx INTEGER NOT NULL,
                    source_text TEXT NOT NULL,
                    translation TEXT,
                    final_text TEXT,
                    status TEXT NOT NULL,
                    source_length INTEGER DEFAULT 0,
                    translated_length INTEGER DEFAULT 0,
                    metadata TEXT DEFAULT '{}',
                    translation_meta TEXT,
                    error TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    UNIQUE(file_id, idx)
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_segments_file_status
                ON segments(file_id, status)
            ''')
            conn.commit()
        logger.info(f"Initialized segment database at {self.db_path}")

    # ==================== 段落 ====================

    def _build_where(self, filter: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        conditions = []
        params: List[Any] = []
        for key, value in (filter or {}).items():
            column = _FIELD_COLUMNS.get(key)
            if column is None:
                raise ValueError(f"不支持的过滤字段: {key}")
            if isinstance(value, (list, tuple, set)):
                values = [_to_db_value(v) for v in value]
                if not values:
                    conditions.append("0")
                    continue
                conditions.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
            else:
                conditions.append(f"{column} = ?")
                params.append(_to_db_value(value))
        where_clause = " AND ".join(conditions) if conditions else "1=1"
        return where_clause, params

    def find_many(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
    ) -> List[Segment]:
        """查询段落

        Args:
            filter: 过滤条件，如 {'file_id': 'f1', 'status': [SegmentStatus.PENDING]}
            sort: 排序，如 [('index', 1)]，1 升序 -1 降序
        """
        where_clause, params = self._build_where(filter)
        order_parts = []
        for field_name, direction in (sort or []):
            column = _FIELD_COLUMNS.get(field_name)
            if column is None:
                raise ValueError(f"不支持的排序字段: {field_name}")
            order_parts.append(f"{column} {'DESC' if direction < 0 else 'ASC'}")
        order_clause = f" ORDER BY {', '.join(order_parts)}" if order_parts else ""

        query = f"SELECT {', '.join(_SEGMENT_COLUMNS)} FROM segments WHERE {where_clause}{order_clause}"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_segment(row) for row in rows]

    def find_by_id(self, segment_id: str) -> Optional[Segment]:
        found = self.find_many({"id": segment_id})
        return found[0] if found else None

    def count_documents(self, filter: Optional[Dict[str, Any]] = None) -> int:
        where_clause, params = self._build_where(filter)
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM segments WHERE {where_clause}", params).fetchone()
        return int(row[0])

    def insert_many(self, segments: List[Segment]) -> int:
        """批量插入段落"""
        if not segments:
            return 0
        rows = [self._segment_to_row(seg) for seg in segments]
        try:
            with self._connect() as conn:
                conn.executemany(
                    f"INSERT INTO segments ({', '.join(_SEGMENT_COLUMNS)}) "
                    f"VALUES ({', '.join('?' for _ in _SEGMENT_COLUMNS)})",
                    rows,
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to insert {len(segments)} segments: {e}")
            raise PersistenceError(f"插入段落失败: {e}") from e
        logger.info(f"Inserted {len(segments)} segments")
        return len(segments)

    def update_one(self, segment_id: str, changes: Dict[str, Any]) -> bool:
        """更新单个段落，返回是否命中"""
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"不可更新的字段: {sorted(unknown)}")

        assignments = []
        params: List[Any] = []
        for key, value in changes.items():
            assignments.append(f"{key} = ?")
            params.append(_to_db_value(value))
        assignments.append("updated_at = ?")
        params.append(int(time.time()))
        params.append(segment_id)

        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE segments SET {', '.join(assignments)} WHERE id = ?", params
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to update segment {segment_id}: {e}")
            raise PersistenceError(f"更新段落 {segment_id} 失败: {e}") from e

    def delete_many(self, filter: Dict[str, Any]) -> int:
        if not filter:
            raise ValueError("delete_many 需要过滤条件")
        where_clause, params = self._build_where(filter)
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"DELETE FROM segments WHERE {where_clause}", params)
                conn.commit()
                deleted = cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Failed to delete segments: {e}")
            raise PersistenceError(f"删除段落失败: {e}") from e
        logger.info(f"Deleted {deleted} segments")
        return deleted

    def replace_file_segments(self, file_id: str, segments: List[Segment],
                              metadata: Optional[Dict[str, Any]] = None) -> int:
        """在同一事务中清空并重建文件的段落，同时更新文件的段落数与元数据；失败时整体回滚"""
        foreign = [seg.id for seg in segments if seg.file_id != file_id]
        if foreign:
            raise ValueError(f"段落不属于文件 {file_id}: {foreign}")

        now = int(time.time())
        assignments = ["segment_count = ?", "updated_at = ?"]
        params: List[Any] = [len(segments), now]
        if metadata is not None:
            assignments.append("metadata = ?")
            params.append(json.dumps(metadata, ensure_ascii=False))
        params.append(file_id)

        try:
            with self._connect() as conn:
                deleted = conn.execute("DELETE FROM segments WHERE file_id = ?", (file_id,)).rowcount
                conn.executemany(
                    f"INSERT INTO segments ({', '.join(_SEGMENT_COLUMNS)}) "
                    f"VALUES ({', '.join('?' for _ in _SEGMENT_COLUMNS)})",
                    [self._segment_to_row(seg) for seg in segments],
                )
                conn.execute(f"UPDATE files SET {', '.join(assignments)} WHERE id = ?", params)
        except sqlite3.Error as e:
            logger.error(f"Failed to replace segments of file {file_id}: {e}")
            raise PersistenceError(f"重建文件 {file_id} 的段落失败: {e}") from e

        if deleted:
            logger.info(f"File {file_id}: replaced {deleted} segments with {len(segments)}")
        return len(segments)

    # ==================== 文件 ====================

    def insert_file(self, record: FileRecord) -> FileRecord:
        try:
            with self._connect() as conn:
                conn.execute('''
                    INSERT INTO files (id, path, name, file_type, segment_count, metadata, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ''', (
                    record.id, record.path, record.name, record.file_type.value,
                    record.segment_count, json.dumps(record.metadata, ensure_ascii=False),
                    record.created_at, record.updated_at,
                ))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to insert file {record.id}: {e}")
            raise PersistenceError(f"插入文件失败: {e}") from e
        return record

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, path, name, file_type, segment_count, metadata, created_at, updated_at "
                "FROM files WHERE id = ?", (file_id,)
            ).fetchone()
        return self._row_to_file(row) if row else None

    def list_files(self) -> List[FileRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, path, name, file_type, segment_count, metadata, created_at, updated_at "
                "FROM files ORDER BY created_at"
            ).fetchall()
        return [self._row_to_file(row) for row in rows]

    def update_file(self, file_id: str, segment_count: Optional[int] = None,
                    metadata: Optional[Dict[str, Any]] = None) -> bool:
        assignments = ["updated_at = ?"]
        params: List[Any] = [int(time.time())]
        if segment_count is not None:
            assignments.append("segment_count = ?")
            params.append(segment_count)
        if metadata is not None:
            assignments.append("metadata = ?")
            params.append(json.dumps(metadata, ensure_ascii=False))
        params.append(file_id)
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"UPDATE files SET {', '.join(assignments)} WHERE id = ?", params)
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to update file {file_id}: {e}")
            raise PersistenceError(f"更新文件失败: {e}") from e

    # ==================== 行转换 ====================

    def _segment_to_row(self, seg: Segment) -> Tuple:
        return (
            seg.id, seg.file_id, seg.index, seg.source_text, seg.translation, seg.final_text,
            seg.status.value, seg.source_length, seg.translated_length,
            json.dumps(seg.metadata, ensure_ascii=False),
            json.dumps(seg.translation_meta.to_dict()) if seg.translation_meta else None,
            seg.error, seg.created_at, seg.updated_at,
        )

    def _row_to_segment(self, row: Tuple) -> Segment:
        return Segment(
            id=row[0],
            file_id=row[1],
            index=row[2],
            source_text=row[3],
            translation=row[4],
            final_text=row[5],
            status=SegmentStatus(row[6]),
            source_length=row[7] or 0,
            translated_length=row[8] or 0,
            metadata=json.loads(row[9]) if row[9] else {},
            translation_meta=TranslationMeta.from_dict(json.loads(row[10])) if row[10] else None,
            error=row[11],
            created_at=row[12],
            updated_at=row[13],
        )

    def _row_to_file(self, row: Tuple) -> FileRecord:
        return FileRecord(
            id=row[0],
            path=row[1],
            name=row[2] or "",
            file_type=FileType(row[3]),
            segment_count=row[4] or 0,
            metadata=json.loads(row[5]) if row[5] else {},
            created_at=row[6],
            updated_at=row[7],
        )


def _to_db_value(value: Any) -> Any:
    if isinstance(value, (SegmentStatus, FileType)):
        return value.value
    if isinstance(value, TranslationMeta):
        return json.dumps(value.to_dict())
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return value
