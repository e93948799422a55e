"""型付きメッセージの受信箱

組織ごとに1つ。宛先ごとのキューと、ブロードキャスト用の共有キューを持つ。
ブロードキャストは既読にしてもキューからは消さず、そのセッションからのみ見えなくする。
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable

from .messages import BROADCAST, MessageType, TypedMessage

logger = logging.getLogger(__name__)

# 宛先ごとの保持上限（リングバッファ）
DEFAULT_MAX_MESSAGES = 200


class MessageInbox:
    """スレッドセーフな組織内メッセージ受信箱"""

    def __init__(self, org_id: str, max_messages: int = DEFAULT_MAX_MESSAGES):
        self.org_id = org_id
        self.max_messages = max_messages
        self._lock = threading.Lock()
        self._direct: dict[str, deque[TypedMessage]] = {}
        self._broadcast: deque[TypedMessage] = deque(maxlen=max_messages)
        # セッションごとの既読ブロードキャストID
        self._hidden: dict[str, set[str]] = {}

    def deliver(self, message: TypedMessage) -> list[str]:
        """メッセージを宛先ごとに配置

        Returns:
            直接配送した宛先ID（'*' は含まない）
        """
        recipients = message.header.recipients()
        delivered: list[str] = []
        with self._lock:
            for recipient in recipients:
                if recipient == BROADCAST or recipient in delivered:
                    continue
                queue = self._direct.get(recipient)
                if queue is None:
                    queue = deque(maxlen=self.max_messages)
                    self._direct[recipient] = queue
                queue.append(message)
                delivered.append(recipient)
            if BROADCAST in recipients:
                self._broadcast.append(message)
        logger.debug(
            f"メッセージ配送: {message.header.type} {message.id} "
            f"from={message.header.sender} to={recipients} (org={self.org_id})"
        )
        return delivered

    def messages_for(
        self,
        session_id: str,
        message_type: MessageType | None = None,
        message_id: str | None = None,
    ) -> list[TypedMessage]:
        """セッション宛の未処理メッセージ（直接 + ブロードキャスト、時刻順）"""
        with self._lock:
            hidden = self._hidden.get(session_id, set())
            direct = list(self._direct.get(session_id, ()))
            broadcast = [m for m in self._broadcast if m.id not in hidden]

        seen: set[str] = set()
        result: list[TypedMessage] = []
        for message in direct + broadcast:
            if message.id in seen:
                continue
            seen.add(message.id)
            if message_id is not None and message.id != message_id:
                continue
            if message_type is not None and message.header.type != message_type:
                continue
            result.append(message)
        result.sort(key=lambda m: m.header.timestamp)
        return result

    def acknowledge(self, session_id: str, message_ids: Iterable[str]) -> int:
        """既読にする

        直接メッセージは削除し、ブロードキャストはこのセッションからのみ隠す。

        Returns:
            既読にした件数
        """
        ids = set(message_ids)
        if not ids:
            return 0
        with self._lock:
            acked: set[str] = set()
            queue = self._direct.get(session_id)
            if queue:
                acked.update(m.id for m in queue if m.id in ids)
                kept = [m for m in queue if m.id not in ids]
                queue.clear()
                queue.extend(kept)
            hidden = self._hidden.setdefault(session_id, set())
            for message in self._broadcast:
                if message.id in ids and message.id not in hidden:
                    hidden.add(message.id)
                    acked.add(message.id)
            # 押し出されたブロードキャストのIDは保持しない
            hidden.intersection_update(m.id for m in self._broadcast)
        # 直接とブロードキャストの両方で受け取ったものは1件として数える
        return len(acked)

    def pending_count(self, session_id: str) -> int:
        """未処理メッセージ数"""
        return len(self.messages_for(session_id))
