"""
PDFエクスポートのプリセット管理

組み込みプリセットから PresetCatalog を作り、ユーザー定義のプリセットを merge() で追加する。
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

FALLBACK_PRESET = 'stakeholder'

PAGE_SIZES: Dict[str, Dict[str, int]] = {
    'A4': {'width': 595, 'height': 842},
    'Letter': {'width': 612, 'height': 792},
    '16:9': {'width': 1024, 'height': 576},
    '4:3': {'width': 1024, 'height': 768},
    'A3': {'width': 842, 'height': 1190},
}

QUALITY_SETTINGS: Dict[str, Dict[str, float]] = {
    'low': {'dpi': 72, 'compression': 0.8},
    'medium': {'dpi': 150, 'compression': 0.6},
    'high': {'dpi': 300, 'compression': 0.4},
}

# レコードのキー(camelCase) と属性名の対応
RECORD_FIELDS = {
    'name': 'name',
    'label': 'label',
    'description': 'description',
    'pageSize': 'page_size',
    'margin': 'margin',
    'includeHeader': 'include_header',
    'includeFooter': 'include_footer',
    'includeFrameNames': 'include_frame_names',
    'headerContent': 'header_content',
    'footerContent': 'footer_content',
    'fontSize': 'font_size',
    'headerFontSize': 'header_font_size',
    'footerFontSize': 'footer_font_size',
    'headerColor': 'header_color',
    'footerColor': 'footer_color',
    'backgroundColor': 'background_color',
    'quality': 'quality',
}
COLOR_FIELDS = ('header_color', 'footer_color', 'background_color')
FLAG_FIELDS = ('include_header', 'include_footer', 'include_frame_names')


def page_dimensions(size_key: Optional[str]) -> Dict[str, int]:
    return dict(PAGE_SIZES.get(size_key, PAGE_SIZES['A4']))


def quality_settings(tier: Optional[str]) -> Dict[str, float]:
    return dict(QUALITY_SETTINGS.get(tier, QUALITY_SETTINGS['high']))


def _color(value: Any) -> Color:
    r, g, b = (float(c) for c in value)
    for component in (r, g, b):
        if not 0 <= component <= 1:
            raise ValueError(f"Color component out of range: {value}")
    return (r, g, b)


@dataclass(frozen=True)
class ExportPreset:
    """名前付きのPDFスタイル設定 (生成後は変更しない)"""
    name: str
    label: str = ''
    description: str = ''
    page_size: str = 'A4'
    margin: float = 30
    include_header: bool = True
    include_footer: bool = True
    include_frame_names: bool = True
    header_content: str = ''
    footer_content: str = ''
    font_size: float = 12
    header_font_size: float = 10
    footer_font_size: float = 10
    header_color: Color = (0, 0, 0)
    footer_color: Color = (0.5, 0.5, 0.5)
    background_color: Color = (1, 1, 1)
    quality: str = 'high'

    @property
    def dimensions(self) -> Dict[str, int]:
        return page_dimensions(self.page_size)

    @property
    def quality_settings(self) -> Dict[str, float]:
        return quality_settings(self.quality)

    def to_record(self) -> Dict[str, Any]:
        record = {}
        for key, attr in RECORD_FIELDS.items():
            value = getattr(self, attr)
            record[key] = list(value) if attr in COLOR_FIELDS else value
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ExportPreset':
        """永続化レコードから生成。name が無い、または値が不正なら ValueError"""
        if not isinstance(record, dict) or not record.get('name'):
            raise ValueError("Preset record has no name")
        kwargs = {}
        for key, attr in RECORD_FIELDS.items():
            if key in record and record[key] is not None:
                kwargs[attr] = record[key]
        for attr in COLOR_FIELDS:
            if attr in kwargs:
                kwargs[attr] = _color(kwargs[attr])
        for attr in FLAG_FIELDS:
            if attr in kwargs:
                kwargs[attr] = bool(kwargs[attr])
        kwargs['margin'] = float(kwargs.get('margin', 30))
        return cls(**kwargs)


BUILTIN_PRESETS: Dict[str, ExportPreset] = {
    'client-signoff': ExportPreset(
        name='client-signoff',
        label='Client Signoff',
        description='Polished presentation for client reviews',
        page_size='A4',
        margin=40,
        include_header=True,
        include_footer=True,
        include_frame_names=True,
        header_content='Confidential - Client Review',
        footer_content='Page {pageNum} of {totalPages}',
        font_size=12,
        header_font_size=10,
        footer_font_size=10,
        header_color=(0.3, 0.3, 0.3),
        footer_color=(0.5, 0.5, 0.5),
        background_color=(1, 1, 1),
        quality='high',
    ),
    'dev-handoff': ExportPreset(
        name='dev-handoff',
        label='Developer Handoff',
        description='Technical documentation with annotations',
        page_size='Letter',
        margin=20,
        include_header=True,
        include_footer=True,
        include_frame_names=True,
        header_content='Technical Specification',
        footer_content='FigmaSnap Export - {date}',
        font_size=10,
        header_font_size=12,
        footer_font_size=8,
        header_color=(0, 0, 0),
        footer_color=(0.3, 0.3, 0.3),
        background_color=(1, 1, 1),
        quality='medium',
    ),
    'stakeholder': ExportPreset(
        name='stakeholder',
        label='Stakeholder Presentation',
        description='Professional presentation for stakeholders',
        page_size='16:9',
        margin=30,
        include_header=False,
        include_footer=True,
        include_frame_names=False,
        header_content='',
        footer_content='© {year} - Confidential',
        font_size=14,
        header_font_size=0,
        footer_font_size=10,
        header_color=(0, 0, 0),
        footer_color=(0.4, 0.4, 0.4),
        background_color=(1, 1, 1),
        quality='high',
    ),
    'clean': ExportPreset(
        name='clean',
        label='Clean Export',
        description='Minimal export without annotations',
        page_size='A4',
        margin=0,
        include_header=False,
        include_footer=False,
        include_frame_names=False,
        header_content='',
        footer_content='',
        font_size=12,
        header_font_size=0,
        footer_font_size=0,
        header_color=(0, 0, 0),
        footer_color=(0, 0, 0),
        background_color=(1, 1, 1),
        quality='high',
    ),
}


class PresetCatalog:
    """組み込み + カスタムプリセットのカタログ"""

    def __init__(self, presets: Optional[Iterable[ExportPreset]] = None):
        self._presets: Dict[str, ExportPreset] = dict(BUILTIN_PRESETS)
        if presets:
            self.merge(presets)

    def names(self) -> List[str]:
        return list(self._presets)

    def resolve(self, name: Optional[str]) -> ExportPreset:
        """名前で検索し、見つからなければ stakeholder を返す"""
        return self._presets.get(name) or self._presets.get(FALLBACK_PRESET) or BUILTIN_PRESETS[FALLBACK_PRESET]

    def register(self, preset: ExportPreset) -> ExportPreset:
        if preset.name in self._presets:
            logger.debug(f"Replacing preset '{preset.name}'")
        self._presets[preset.name] = preset
        return preset

    def merge(self, presets: Iterable[ExportPreset]) -> int:
        count = 0
        for preset in presets:
            self.register(preset)
            count += 1
        return count

    def create_custom(self, name: str, **options) -> ExportPreset:
        """
        既定値 (余白30, 品質high, ヘッダー/フッター/フレーム名は明示的に False でない限り有効)
        の上に options を重ねたプリセットを作成・登録する
        """
        def option(key, default):
            value = options.get(key)
            return default if value is None else value

        preset = ExportPreset(
            name=name,
            label=option('label', name),
            description=option('description', 'Custom export preset'),
            page_size=option('page_size', 'A4'),
            margin=float(option('margin', 30)),
            include_header=options.get('include_header') is not False,
            include_footer=options.get('include_footer') is not False,
            include_frame_names=options.get('include_frame_names') is not False,
            header_content=option('header_content', ''),
            footer_content=option('footer_content', ''),
            font_size=option('font_size', 12),
            header_font_size=option('header_font_size', 10),
            footer_font_size=option('footer_font_size', 10),
            header_color=_color(option('header_color', (0, 0, 0))),
            footer_color=_color(option('footer_color', (0.5, 0.5, 0.5))),
            background_color=_color(option('background_color', (1, 1, 1))),
            quality=option('quality', 'high'),
        )
        return self.register(preset)
