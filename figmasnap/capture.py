"""
Figma プロトタイプのスライドキャプチャ

ブラウザでプロトタイプを開き、スライドを1枚ずつ撮影しながら進める。
同一フレームが DUPLICATE_THRESHOLD 回連続したら終端とみなす。
静止したスライドが途中で3回以上続くケースでは早期終了するが、これは既知の割り切り。
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import async_playwright, Page, Browser, BrowserContext, Error as PlaywrightError

from .constants import (
    MAX_SLIDES, WAIT_MS, DUPLICATE_THRESHOLD, VIEWPORT, DEVICE_SCALE_FACTOR, USER_AGENT, LAUNCH_ARGS,
    DEFAULT_OUTPUT_DIR, DEFAULT_PROTOTYPE_NAME,
)
from .document import DocumentAssembler
from .errors import (
    BrowserUnavailableError, FigmaSnapError, InvalidFlowError, InvalidPrototypeUrlError, OutputDirectoryError,
)
from .flows import GuidedFlowExecutor
from .interactions import (
    open_target, authenticate_if_prompted, wait_for_initial_render, focus_canvas,
    apply_redaction, advance_slide, force_advance, read_title, infer_frame_label, discover_flows,
)
from .models import CaptureResult, CaptureSession, FlowConfig, TerminationReason
from .presets import FALLBACK_PRESET, PresetCatalog
from .stability import frames_equal, wait_for_stable_frame
from .status import LoggingStatusSink, PrefixedStatusSink, StatusSink
from .utils import document_filename, flow_target_url, is_prototype_url, label_from_title, slide_filename

logger = logging.getLogger(__name__)


def prepare_output_dir(output_dir, status: StatusSink) -> Path:
    path = Path(output_dir or DEFAULT_OUTPUT_DIR)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        status.error(f"Failed to create output directory: {e}")
        raise OutputDirectoryError(str(e)) from e
    return path


class BrowserSession:
    """Playwright の起動と確実な後始末"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self) -> Page:
        try:
            await self.initialize()
        except BaseException:
            await self.cleanup()
            raise
        return self.page

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def initialize(self):
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.config.get('headless', False),
                executable_path=self.config.get('chrome_path') or None,
                ignore_default_args=['--enable-automation'],
                args=LAUNCH_ARGS,
            )
        except PlaywrightError as e:
            raise BrowserUnavailableError(f"Could not launch browser: {e}") from e
        self.context = await self.browser.new_context(
            viewport=VIEWPORT,
            device_scale_factor=DEVICE_SCALE_FACTOR,
            user_agent=USER_AGENT,
        )
        self.page = await self.context.new_page()

    async def cleanup(self):
        for resource in (self.context, self.browser):
            if resource:
                try:
                    await resource.close()
                except PlaywrightError as e:
                    logger.debug(f"Close failed: {e}")
        if self.playwright:
            await self.playwright.stop()
        self.context = self.browser = self.playwright = self.page = None


class CaptureLoop:
    """1つのターゲットをキャプチャしてPDFにまとめる"""

    def __init__(self, page: Page, config: Dict[str, Any], status: Optional[StatusSink] = None,
                 catalog: Optional[PresetCatalog] = None):
        self.page = page
        self.config = config
        self.status = status or LoggingStatusSink()
        self.catalog = catalog or PresetCatalog()
        self.assembler = DocumentAssembler(self.status)
        self.output_dir = Path(config.get('output_dir') or DEFAULT_OUTPUT_DIR)
        self.max_slides = config.get('max_slides', MAX_SLIDES)
        self.wait_ms = config.get('wait_ms', WAIT_MS)
        self.duplicate_threshold = config.get('duplicate_threshold', DUPLICATE_THRESHOLD)
        self.session = CaptureSession()

    async def run(self, url: str) -> CaptureResult:
        result = CaptureResult(url=url)
        await open_target(self.page, url, self.status)
        await authenticate_if_prompted(self.page, self.config.get('password'), self.status)
        await wait_for_initial_render(self.page, self.status)
        await focus_canvas(self.page)

        result.reason = await self.capture_slides(result)
        result.frames = list(self.session.frames)
        result.title = await read_title(self.page)
        self.finalize(result)
        return result

    async def capture_frame(self) -> bytes:
        if self.config.get('redact'):
            await apply_redaction(self.page)
        if self.config.get('settle_frames'):
            return await wait_for_stable_frame(
                lambda: self.page.screenshot(full_page=False),
                sleep=self.page.wait_for_timeout,
            )
        return await self.page.screenshot(full_page=False)

    async def capture_slides(self, result: CaptureResult) -> TerminationReason:
        session = self.session
        for i in range(1, self.max_slides + 1):
            session.slide = i
            self.status.progress(f"Capturing slide {i}...", i, self.max_slides)
            buffer = await self.capture_frame()

            if frames_equal(buffer, session.previous):
                session.duplicates += 1
                logger.debug(f"Duplicate frame ({session.duplicates}/{self.duplicate_threshold})")
                if session.duplicates >= self.duplicate_threshold:
                    self.status.info("End detected by visual stability.")
                    return TerminationReason.VISUAL_END
            else:
                label = await infer_frame_label(self.page) if self.config.get('label_frames') else None
                frame = session.keep(buffer, label)
                result.frame_paths.append(self.save_frame(frame.index, buffer))

            await advance_slide(self.page)
            if session.duplicates > 0:
                await force_advance(self.page)
            await self.page.wait_for_timeout(self.wait_ms)

        logger.info(f"Reached max slides limit {self.max_slides}")
        return TerminationReason.MAX_SLIDES

    def save_frame(self, index: int, buffer: bytes) -> Path:
        path = self.output_dir / slide_filename(index)
        try:
            path.write_bytes(buffer)
        except OSError as e:
            self.status.error(f"Failed to save slide {index}: {e}")
            raise
        return path

    def finalize(self, result: CaptureResult):
        if not result.frames:
            self.status.error("No slides were captured. Please check URL.")
            return

        self.status.info("Finalizing PDF Document...")
        preset_name = self.config.get('preset') or FALLBACK_PRESET
        preset = self.catalog.resolve(preset_name)
        document = self.assembler.create_document(result.frames, preset)
        if preset.name == FALLBACK_PRESET and self.config.get('cover_page', True):
            title = label_from_title(result.title) or DEFAULT_PROTOTYPE_NAME
            self.assembler.add_cover_page(document, title, self.config.get('flow_label'))

        path = self.output_dir / document_filename(result.title)
        try:
            result.document_path = document.save(path)
        except OSError as e:
            self.status.error(f"Failed to save PDF: {e}")
            raise
        self.status.success(f"Success! Compiled {len(result.frames)} slides.")


def validate_target(url: Optional[str], status: StatusSink):
    if not is_prototype_url(url):
        status.error("Invalid Figma URL format. Please use a valid Figma prototype URL.")
        raise InvalidPrototypeUrlError(url)


async def capture_prototype(config: Dict[str, Any], status: Optional[StatusSink] = None,
                            catalog: Optional[PresetCatalog] = None, url: Optional[str] = None) -> CaptureResult:
    """URLを検証し、ブラウザを起動して1ターゲット分をキャプチャする"""
    status = status or LoggingStatusSink()
    url = url or config.get('url')
    validate_target(url, status)
    status.info("Initializing capture...")
    prepare_output_dir(config.get('output_dir'), status)

    async with BrowserSession(config) as page:
        loop = CaptureLoop(page, config, status, catalog)
        return await loop.run(url)


async def discover_prototype_flows(config: Dict[str, Any], status: Optional[StatusSink] = None) -> List[Dict[str, str]]:
    """プロトタイプを開いてサイドバーのフロー一覧を読む"""
    status = status or LoggingStatusSink()
    url = config.get('url')
    validate_target(url, status)
    async with BrowserSession(config) as page:
        await open_target(page, url, status)
        await authenticate_if_prompted(page, config.get('password'), status)
        await wait_for_initial_render(page, status)
        return await discover_flows(page, status)


async def capture_targets(config: Dict[str, Any], node_ids: Sequence[Optional[str]],
                          status: Optional[StatusSink] = None,
                          catalog: Optional[PresetCatalog] = None,
                          labels: Optional[Sequence[str]] = None) -> List[CaptureResult]:
    """
    複数フローを順番にキャプチャする

    1つのターゲットの失敗で残りを中断しない。失敗したターゲットは error イベントで通知する。
    labels を渡すとカバーページのフロー名に使う (無ければ "Flow i")。
    """
    status = status or LoggingStatusSink()
    node_ids = list(node_ids) or [None]
    results = []
    for i, node_id in enumerate(node_ids, start=1):
        prefix = f"[Flow {i}/{len(node_ids)}] " if len(node_ids) > 1 else ''
        target_status = PrefixedStatusSink(status, prefix)
        url = flow_target_url(config.get('url') or '', node_id)
        flow_label = config.get('flow_label')
        if node_id:
            flow_label = labels[i - 1] if labels and i <= len(labels) else f"Flow {i}"
        target_config = dict(config, flow_label=flow_label)
        try:
            results.append(await capture_prototype(target_config, target_status, catalog, url=url))
        except FigmaSnapError as e:
            target_status.error(f"Scraper error: {e}")
            results.append(CaptureResult(url=url))
        except Exception as e:
            logger.exception(f"Unexpected error while capturing {url}")
            target_status.error(f"Scraper error: {e}")
            results.append(CaptureResult(url=url))
    return results


async def run_guided_flow(flow: FlowConfig, config: Dict[str, Any], status: Optional[StatusSink] = None,
                          catalog: Optional[PresetCatalog] = None) -> CaptureResult:
    """ガイドフローを実行してから最終画面を1枚キャプチャする"""
    status = status or LoggingStatusSink()
    if flow is None or getattr(flow, 'steps', None) is None:
        status.error('Invalid flow configuration')
        raise InvalidFlowError('Invalid flow configuration')
    url = flow.url or config.get('url')
    validate_target(url, status)
    config = dict(config, preset=config.get('preset') or flow.options.preset, flow_label=flow.name)
    prepare_output_dir(config.get('output_dir'), status)

    async with BrowserSession(config) as page:
        loop = CaptureLoop(page, config, status, catalog)
        await open_target(page, url, status)
        await authenticate_if_prompted(page, config.get('password'), status)
        await wait_for_initial_render(page, status)
        await GuidedFlowExecutor(page, status).execute(flow)

        result = CaptureResult(url=url)
        buffer = await loop.capture_frame()
        label = await infer_frame_label(page)
        frame = loop.session.keep(buffer, label)
        result.frame_paths.append(loop.save_frame(frame.index, buffer))
        result.frames = list(loop.session.frames)
        result.title = await read_title(page)
        loop.finalize(result)
        return result
