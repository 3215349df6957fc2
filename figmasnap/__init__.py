"""
FigmaSnap: Figma プロトタイプのスライドをキャプチャしてPDFにまとめる
"""
from .capture import CaptureLoop, capture_prototype, capture_targets, run_guided_flow
from .document import DocumentAssembler, PDFDocument
from .flows import GuidedFlowExecutor, create_guided_flow
from .presets import ExportPreset, PresetCatalog, page_dimensions, quality_settings
from .placeholders import substitute
from .stability import frames_equal, is_blank, wait_for_stable_frame
from .status import StatusEvent, StatusSink
from .storage import FlowStore, PresetStore

__version__ = '1.0.0'
