"""
キャプチャしたフレームからページ付きPDFを組み立てる

ページは PDFDocument に描画計画として溜めておき、render() 時に reportlab で書き出す。
表紙ページを後から先頭に差し込めるようにするため。
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdfcanvas

from .models import CaptureFrame
from .placeholders import locale_date, substitute
from .presets import ExportPreset, page_dimensions, quality_settings
from .status import StatusSink

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

FONT = 'Helvetica'
FONT_BOLD = 'Helvetica-Bold'
HEADER_OFFSET = 20
FOOTER_OFFSET = 10
FRAME_NAME_OFFSET = 30
FRAME_NAME_COLOR = (0.5, 0.5, 0.5)
COVER_BACKGROUND = (0.09, 0.09, 0.14)
COVER_TEXT_COLOR = (1, 1, 1)
COVER_MUTED_COLOR = (0.7, 0.7, 0.75)


@dataclass
class TextOverlay:
    text: str
    x: float
    y: float
    size: float
    color: Color
    font: str = FONT
    centered: bool = False
    kind: str = 'text'


@dataclass
class DocumentPage:
    width: float
    height: float
    background: Color
    image: Optional[Image.Image] = None
    image_box: Optional[Tuple[float, float, float, float]] = None
    overlays: List[TextOverlay] = field(default_factory=list)
    frame_index: Optional[int] = None


class PDFDocument:
    """ページの並びと描画処理"""

    def __init__(self, preset: ExportPreset, status: Optional[StatusSink] = None):
        self.preset = preset
        self.status = status
        self.pages: List[DocumentPage] = []

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def add_page(self, page: DocumentPage):
        self.pages.append(page)

    def insert_page(self, index: int, page: DocumentPage):
        self.pages.insert(index, page)

    def _warn(self, message: str):
        if self.status:
            self.status.warning(message)
        else:
            logger.warning(message)

    def _scaled_image(self, page: DocumentPage) -> Image.Image:
        """品質設定の dpi を上限にラスタを縮小する"""
        image = page.image
        _, _, box_w, box_h = page.image_box
        dpi = quality_settings(self.preset.quality)['dpi']
        max_w = max(1, int(box_w * dpi / 72))
        max_h = max(1, int(box_h * dpi / 72))
        if image.width > max_w or image.height > max_h:
            image = image.copy()
            image.thumbnail((max_w, max_h), Image.Resampling.LANCZOS)
        return image

    def _draw_page(self, c, page: DocumentPage, number: int):
        c.setPageSize((page.width, page.height))
        c.setFillColorRGB(*page.background)
        c.rect(0, 0, page.width, page.height, stroke=0, fill=1)
        if page.image is not None and page.image_box:
            x, y, w, h = page.image_box
            c.drawImage(ImageReader(self._scaled_image(page)), x, y, width=w, height=h, mask='auto')
        for overlay in page.overlays:
            if not overlay.text or overlay.size <= 0:
                continue
            try:
                c.setFont(overlay.font, overlay.size)
                c.setFillColorRGB(*overlay.color)
                if overlay.centered:
                    c.drawCentredString(overlay.x, overlay.y, overlay.text)
                else:
                    c.drawString(overlay.x, overlay.y, overlay.text)
            except Exception as e:
                self._warn(f"Could not draw {overlay.kind} on page {number}: {e}")
        c.showPage()

    def render(self) -> bytes:
        buffer = BytesIO()
        compress = 1 if quality_settings(self.preset.quality)['compression'] > 0 else 0
        c = pdfcanvas.Canvas(buffer, pageCompression=compress)
        c.setTitle(self.preset.label or self.preset.name)
        c.setCreator('FigmaSnap')
        for number, page in enumerate(self.pages, start=1):
            self._draw_page(c, page, number)
        c.save()
        return buffer.getvalue()

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_bytes(self.render())
        return path


class DocumentAssembler:
    """プリセットに従ってフレームをページに配置する"""

    def __init__(self, status: Optional[StatusSink] = None):
        self.status = status

    def _warn(self, message: str):
        if self.status:
            self.status.warning(message)
        else:
            logger.warning(message)

    def create_document(self, frames: Sequence[CaptureFrame], preset: ExportPreset) -> PDFDocument:
        document = PDFDocument(preset, self.status)
        total = len(frames)
        for number, frame in enumerate(frames, start=1):
            page = self.build_page(frame, preset, number, total)
            if page is not None:
                document.add_page(page)
        logger.info(f"Assembled {document.page_count}/{total} pages with preset '{preset.name}'")
        return document

    def build_page(self, frame: CaptureFrame, preset: ExportPreset, page_num: int, total_pages: int) -> Optional[DocumentPage]:
        try:
            image = Image.open(BytesIO(frame.data))
            image.load()
            image = image.convert('RGB')
        except Exception as e:
            self._warn(f"Could not embed slide {frame.index} into PDF. PNG saved. ({e})")
            return None

        dims = page_dimensions(preset.page_size)
        width, height = dims['width'], dims['height']
        margin = preset.margin
        page = DocumentPage(
            width=width,
            height=height,
            background=preset.background_color,
            image=image,
            image_box=(margin, margin, max(1, width - 2 * margin), max(1, height - 2 * margin)),
            frame_index=frame.index,
        )

        values = {'pageNum': page_num, 'totalPages': total_pages}
        if preset.include_header and preset.header_content:
            self._add_overlay(page, 'header', lambda: TextOverlay(
                substitute(preset.header_content, values),
                margin, height - margin - HEADER_OFFSET,
                preset.header_font_size, preset.header_color, kind='header',
            ))
        if preset.include_footer and preset.footer_content:
            self._add_overlay(page, 'footer', lambda: TextOverlay(
                substitute(preset.footer_content, values),
                margin, margin + FOOTER_OFFSET,
                preset.footer_font_size, preset.footer_color, kind='footer',
            ))
        if preset.include_frame_names and frame.label:
            self._add_overlay(page, 'frame name', lambda: TextOverlay(
                frame.label, margin, margin + FRAME_NAME_OFFSET,
                preset.font_size, FRAME_NAME_COLOR, kind='frame name',
            ))
        return page

    def _add_overlay(self, page: DocumentPage, kind: str, build):
        try:
            page.overlays.append(build())
        except Exception as e:
            self._warn(f"Could not add {kind} to slide {page.frame_index}: {e}")

    def add_cover_page(self, document: PDFDocument, title: str, flow_label: Optional[str] = None,
                       today: Optional[date] = None) -> DocumentPage:
        """タイトル・フロー名・生成日を載せた表紙を先頭に挿入する"""
        dims = page_dimensions(document.preset.page_size)
        width, height = dims['width'], dims['height']
        center = width / 2
        overlays = [TextOverlay(title, center, height * 0.55, 32, COVER_TEXT_COLOR, FONT_BOLD, True, 'cover title')]
        if flow_label:
            overlays.append(TextOverlay(flow_label, center, height * 0.55 - 40, 16, COVER_MUTED_COLOR,
                                        centered=True, kind='cover flow label'))
        overlays.append(TextOverlay(f"Generated {locale_date(today)}", center, height * 0.2, 10,
                                    COVER_MUTED_COLOR, centered=True, kind='cover date'))
        cover = DocumentPage(width=width, height=height, background=COVER_BACKGROUND, overlays=overlays)
        document.insert_page(0, cover)
        return cover
