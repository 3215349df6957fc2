"""
ステータスイベントの送出先

キャプチャ処理とガイドフロー実行はこのインターフェース(emit)だけに依存する。
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class StatusType(str, Enum):
    INFO = 'info'
    PROGRESS = 'progress'
    WARNING = 'warning'
    ERROR = 'error'
    SUCCESS = 'success'


@dataclass(frozen=True)
class StatusEvent:
    """UI/オーケストレーションへ通知するイベント"""
    type: StatusType
    message: str
    current: Optional[int] = None
    total: Optional[int] = None

    @property
    def fraction(self) -> Optional[float]:
        if self.type != StatusType.PROGRESS or not self.total:
            return None
        return min(1.0, (self.current or 0) / self.total)

    def to_dict(self) -> dict:
        data = {'type': self.type.value, 'message': self.message}
        if self.type == StatusType.PROGRESS:
            data['current'] = self.current
            data['total'] = self.total
        return data


class StatusSink:
    """emit() を実装するイベントシンクの基底クラス"""

    def emit(self, event: StatusEvent) -> None:
        raise NotImplementedError

    def info(self, message: str) -> None:
        self.emit(StatusEvent(StatusType.INFO, message))

    def progress(self, message: str, current: int, total: int) -> None:
        self.emit(StatusEvent(StatusType.PROGRESS, message, current, total))

    def warning(self, message: str) -> None:
        self.emit(StatusEvent(StatusType.WARNING, message))

    def error(self, message: str) -> None:
        self.emit(StatusEvent(StatusType.ERROR, message))

    def success(self, message: str) -> None:
        self.emit(StatusEvent(StatusType.SUCCESS, message))


class LoggingStatusSink(StatusSink):
    """イベントをロガーに流す"""

    LEVELS = {
        StatusType.WARNING: logging.WARNING,
        StatusType.ERROR: logging.ERROR,
    }

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def emit(self, event: StatusEvent) -> None:
        message = event.message
        if event.type == StatusType.PROGRESS and event.total:
            message = f"[{event.current}/{event.total}] {message}"
        self.log.log(self.LEVELS.get(event.type, logging.INFO), message)


class CollectingStatusSink(StatusSink):
    """イベントを記録する (テスト・複数ターゲット実行用)"""

    def __init__(self, forward: Optional[StatusSink] = None):
        self.events: List[StatusEvent] = []
        self.forward = forward

    def emit(self, event: StatusEvent) -> None:
        self.events.append(event)
        if self.forward:
            self.forward.emit(event)

    def of_type(self, status_type: StatusType) -> List[StatusEvent]:
        return [e for e in self.events if e.type == status_type]


class PrefixedStatusSink(StatusSink):
    """メッセージの先頭に固定の接頭辞を付けて転送する"""

    def __init__(self, target: StatusSink, prefix: str):
        self.target = target
        self.prefix = prefix

    def emit(self, event: StatusEvent) -> None:
        if not self.prefix:
            self.target.emit(event)
            return
        self.target.emit(StatusEvent(event.type, f"{self.prefix}{event.message}", event.current, event.total))
