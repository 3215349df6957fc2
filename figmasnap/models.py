# models.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidFlowError


@dataclass(frozen=True)
class CaptureFrame:
    data: bytes
    index: int
    label: Optional[str] = None
    timestamp: Optional[str] = None


class FlowAction(str, Enum):
    """
    ガイドフローのステップ種別

    未知の種別は CLICK として扱う (旧フローとの互換のための意図した挙動)。
    """
    CLICK = 'click'
    TYPE = 'type'
    WAIT = 'wait'
    NAVIGATE = 'navigate'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'FlowAction':
        try:
            return cls(str(value).lower()) if value else cls.CLICK
        except ValueError:
            return cls.CLICK


@dataclass(frozen=True)
class FlowStep:
    action: FlowAction = FlowAction.CLICK
    selector: Optional[str] = None
    description: str = ''
    wait_after: Optional[int] = 2000
    text: Optional[str] = None  # type
    url: Optional[str] = None  # navigate
    duration: Optional[int] = None  # wait
    raw_action: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'FlowStep':
        raw_action = record.get('action')
        return cls(
            action=FlowAction.parse(raw_action),
            selector=record.get('selector'),
            description=record.get('description') or '',
            wait_after=record.get('waitAfter', 2000),
            text=record.get('text'),
            url=record.get('url'),
            duration=record.get('duration'),
            raw_action=raw_action,
        )

    def to_record(self) -> Dict[str, Any]:
        record = {
            'action': self.action.value,
            'selector': self.selector,
            'description': self.description,
            'waitAfter': self.wait_after,
        }
        for key in ('text', 'url', 'duration'):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        return record


@dataclass(frozen=True)
class FlowOptions:
    max_slides: int = 50
    wait_ms: int = 3000
    preset: str = 'stakeholder'
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> 'FlowOptions':
        record = dict(record or {})
        return cls(
            max_slides=record.pop('maxSlides', None) or 50,
            wait_ms=record.pop('waitMs', None) or 3000,
            preset=record.pop('preset', None) or 'stakeholder',
            extra=record,
        )

    def to_record(self) -> Dict[str, Any]:
        return {'maxSlides': self.max_slides, 'waitMs': self.wait_ms, 'preset': self.preset, **self.extra}


@dataclass(frozen=True)
class FlowConfig:
    steps: Tuple[FlowStep, ...]
    options: FlowOptions = field(default_factory=FlowOptions)
    url: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> 'FlowConfig':
        if not isinstance(record, dict) or not isinstance(record.get('steps'), list):
            raise InvalidFlowError('Invalid flow configuration')
        return cls(
            steps=tuple(FlowStep.from_record(step) for step in record['steps']),
            options=FlowOptions.from_record(record.get('options')),
            url=record.get('url'),
            name=record.get('name'),
            created_at=record.get('createdAt'),
            updated_at=record.get('updatedAt'),
        )

    def to_record(self) -> Dict[str, Any]:
        record = {
            'url': self.url,
            'steps': [step.to_record() for step in self.steps],
            'options': self.options.to_record(),
        }
        if self.name:
            record['name'] = self.name
        return record


class TerminationReason(str, Enum):
    VISUAL_END = 'visual-end-detected'
    MAX_SLIDES = 'max-slides-reached'


@dataclass
class CaptureSession:
    """1回のキャプチャ実行中だけ存在する状態"""
    slide: int = 0
    previous: Optional[bytes] = None
    duplicates: int = 0
    frames: List[CaptureFrame] = field(default_factory=list)

    def keep(self, data: bytes, label: Optional[str] = None) -> CaptureFrame:
        frame = CaptureFrame(data, len(self.frames) + 1, label, datetime.now().isoformat())
        self.frames.append(frame)
        self.previous = data
        self.duplicates = 0
        return frame


@dataclass
class CaptureResult:
    url: str
    frames: List[CaptureFrame] = field(default_factory=list)
    reason: Optional[TerminationReason] = None
    title: Optional[str] = None
    document_path: Optional[Path] = None
    frame_paths: List[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.frames) and self.document_path is not None
