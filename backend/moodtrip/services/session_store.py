"""
会话存储

对话消息按会话追加写入，推荐历史只保留最近的记录。
推荐结果（排名后的景点）和出行信息挂在对应的推荐请求下，查询历史时一起返回。
两种实现在构造时选定：
- InMemorySessionStore: 进程内存储，临时会话
- DuckDBSessionStore: DuckDB 文件存储

注意：DuckDB 不支持多进程并发写入，同一个数据库文件只应由一个服务进程打开。
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

import duckdb

from moodtrip.config import Settings
from moodtrip.models import ConversationTurn, HistoryRecord, Questionnaire, RankedPlace

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20


class SessionStore(ABC):
    """会话存储接口"""

    @abstractmethod
    async def append(self, session_id: str, turn: ConversationTurn) -> None:
        """追加一条消息"""

    @abstractmethod
    async def load(self, session_id: str) -> List[ConversationTurn]:
        """按时间顺序读取会话消息"""

    @abstractmethod
    async def save_record(self, record: HistoryRecord) -> None:
        """保存一次推荐请求"""

    @abstractmethod
    async def save_recommendations(
        self,
        session_id: str,
        questionnaire: Optional[Questionnaire],
        places: List[RankedPlace]
    ) -> bool:
        """
        记录某次推荐请求的出行信息和推荐结果（覆盖之前的结果）

        Returns:
            是否找到对应的推荐请求
        """

    @abstractmethod
    async def recent_records(self, limit: int = HISTORY_LIMIT) -> List[HistoryRecord]:
        """最近的推荐请求，新的在前"""

    async def close(self) -> None:
        """释放资源"""


class InMemorySessionStore(SessionStore):
    """进程内存储"""

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self._turns: Dict[str, List[ConversationTurn]] = defaultdict(list)
        self._records: List[HistoryRecord] = []
        self.history_limit = history_limit

    async def append(self, session_id: str, turn: ConversationTurn) -> None:
        self._turns[session_id].append(turn)

    async def load(self, session_id: str) -> List[ConversationTurn]:
        return list(self._turns.get(session_id, []))

    async def save_record(self, record: HistoryRecord) -> None:
        self._records.insert(0, record)
        del self._records[self.history_limit:]

    async def save_recommendations(
        self,
        session_id: str,
        questionnaire: Optional[Questionnaire],
        places: List[RankedPlace]
    ) -> bool:
        for index, record in enumerate(self._records):
            if record.id == session_id:
                self._records[index] = record.model_copy(update={
                    "questionnaire": questionnaire,
                    "recommended_places": list(places),
                })
                return True
        return False

    async def recent_records(self, limit: int = HISTORY_LIMIT) -> List[HistoryRecord]:
        return self._records[:limit]


class DuckDBSessionStore(SessionStore):
    """DuckDB 存储"""

    def __init__(self, db_path: str):
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path

        # 尝试连接数据库，如果WAL损坏则尝试恢复
        try:
            self.conn = duckdb.connect(db_path)
        except duckdb.Error as e:
            logger.warning(f"⚠️ 数据库连接失败: {e}")
            wal_path = db_path + ".wal"
            if not os.path.exists(wal_path):
                raise
            logger.warning(f"🔧 尝试删除损坏的WAL文件: {wal_path}")
            os.remove(wal_path)
            self.conn = duckdb.connect(db_path)

        self._init_tables()

    def _init_tables(self):
        """初始化数据表"""
        self.conn.execute("CREATE SEQUENCE IF NOT EXISTS chat_messages_seq")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id BIGINT PRIMARY KEY DEFAULT nextval('chat_messages_seq'),
                session_id VARCHAR NOT NULL,
                role VARCHAR NOT NULL,
                content TEXT NOT NULL,
                message_type VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS recommendation_sessions (
                id VARCHAR PRIMARY KEY,
                input_type VARCHAR NOT NULL,
                input_content TEXT,
                extracted_keywords VARCHAR,
                created_at TIMESTAMP NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS travel_questionnaires (
                session_id VARCHAR PRIMARY KEY,
                travel_date DATE NOT NULL,
                travel_time VARCHAR NOT NULL,
                traveler_count INTEGER NOT NULL,
                departure_location VARCHAR NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS recommended_places (
                session_id VARCHAR NOT NULL,
                place_rank INTEGER NOT NULL,
                place_id VARCHAR,
                place_name VARCHAR NOT NULL,
                address VARCHAR,
                latitude DOUBLE,
                longitude DOUBLE,
                description TEXT,
                image_urls VARCHAR,
                rating DOUBLE,
                distance DOUBLE,
                score DOUBLE,
                matched_keywords VARCHAR,
                map_provider VARCHAR,
                tel VARCHAR,
                PRIMARY KEY (session_id, place_rank)
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages(session_id)")

    async def append(self, session_id: str, turn: ConversationTurn) -> None:
        self.conn.execute("""
            INSERT INTO chat_messages (session_id, role, content, message_type, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, [session_id, turn.role.value, turn.content, turn.kind.value, turn.timestamp])

    async def load(self, session_id: str) -> List[ConversationTurn]:
        rows = self.conn.execute("""
            SELECT role, content, message_type, created_at FROM chat_messages
            WHERE session_id = ? ORDER BY id ASC
        """, [session_id]).fetchall()
        return [
            ConversationTurn(role=role, content=content, kind=kind, timestamp=created_at)
            for role, content, kind, created_at in rows
        ]

    async def save_record(self, record: HistoryRecord) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO recommendation_sessions (id, input_type, input_content, extracted_keywords, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, [
            record.id,
            record.input_type.value,
            record.input_content,
            json.dumps(record.keywords, ensure_ascii=False),
            record.created_at
        ])

    async def recent_records(self, limit: int = HISTORY_LIMIT) -> List[HistoryRecord]:
        rows = self.conn.execute("""
            SELECT id, input_type, input_content, extracted_keywords, created_at
            FROM recommendation_sessions ORDER BY created_at DESC LIMIT ?
        """, [limit]).fetchall()
        return [
            HistoryRecord(
                id=row[0],
                input_type=row[1],
                input_content=row[2] or "",
                keywords=json.loads(row[3]) if row[3] else [],
                created_at=row[4],
                questionnaire=self._load_questionnaire(row[0]),
                recommended_places=self._load_places(row[0])
            )
            for row in rows
        ]

    async def save_recommendations(
        self,
        session_id: str,
        questionnaire: Optional[Questionnaire],
        places: List[RankedPlace]
    ) -> bool:
        found = self.conn.execute(
            "SELECT 1 FROM recommendation_sessions WHERE id = ?", [session_id]
        ).fetchone()
        if found is None:
            return False

        self.conn.execute("DELETE FROM travel_questionnaires WHERE session_id = ?", [session_id])
        if questionnaire is not None:
            self.conn.execute("""
                INSERT INTO travel_questionnaires (session_id, travel_date, travel_time, traveler_count, departure_location)
                VALUES (?, ?, ?, ?, ?)
            """, [
                session_id,
                questionnaire.travel_date,
                questionnaire.travel_time.value,
                questionnaire.traveler_count,
                questionnaire.departure_location
            ])

        self.conn.execute("DELETE FROM recommended_places WHERE session_id = ?", [session_id])
        for rank, place in enumerate(places, start=1):
            self.conn.execute("""
                INSERT INTO recommended_places (
                    session_id, place_rank, place_id, place_name, address, latitude, longitude,
                    description, image_urls, rating, distance, score, matched_keywords, map_provider, tel
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                session_id,
                rank,
                place.id,
                place.name,
                place.address,
                place.location.lat if place.location else None,
                place.location.lng if place.location else None,
                place.description,
                json.dumps(place.images, ensure_ascii=False),
                place.rating,
                place.distance,
                place.score,
                json.dumps(place.matched_keywords, ensure_ascii=False),
                place.provider.value,
                place.tel
            ])
        return True

    def _load_questionnaire(self, session_id: str) -> Optional[Questionnaire]:
        row = self.conn.execute("""
            SELECT travel_date, travel_time, traveler_count, departure_location
            FROM travel_questionnaires WHERE session_id = ?
        """, [session_id]).fetchone()
        if row is None:
            return None
        return Questionnaire(
            travel_date=row[0],
            travel_time=row[1],
            traveler_count=row[2],
            departure_location=row[3]
        )

    def _load_places(self, session_id: str) -> List[RankedPlace]:
        rows = self.conn.execute("""
            SELECT place_id, place_name, address, latitude, longitude, description, image_urls,
                   rating, distance, score, matched_keywords, map_provider, tel
            FROM recommended_places WHERE session_id = ? ORDER BY place_rank ASC
        """, [session_id]).fetchall()
        return [
            RankedPlace(
                id=row[0] or "",
                name=row[1],
                address=row[2] or "",
                location={"lat": row[3], "lng": row[4]} if row[3] is not None and row[4] is not None else None,
                description=row[5] or "",
                images=json.loads(row[6]) if row[6] else [],
                rating=row[7],
                distance=row[8],
                score=row[9] or 0.0,
                matched_keywords=json.loads(row[10]) if row[10] else [],
                provider=row[11],
                tel=row[12] or ""
            )
            for row in rows
        ]

    async def close(self) -> None:
        """执行checkpoint并关闭连接"""
        try:
            self.conn.execute("CHECKPOINT")
        finally:
            self.conn.close()
            logger.info("✅ 数据库连接已安全关闭")


def build_session_store(settings: Settings) -> SessionStore:
    """根据配置创建会话存储"""
    backend = settings.SESSION_BACKEND.lower()
    if backend == "duckdb":
        logger.info(f"💾 会话存储: DuckDB ({settings.DUCKDB_PATH})")
        return DuckDBSessionStore(settings.DUCKDB_PATH)
    if backend != "memory":
        raise ValueError(f"未知的会话存储类型: {settings.SESSION_BACKEND}")
    logger.info("💾 会话存储: 内存")
    return InMemorySessionStore()
