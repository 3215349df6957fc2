# constants.py
import logging

logger = logging.getLogger(__name__)

# Constants
DEFAULT_OUTPUT_DIR = "downloads"
DEFAULT_PRESET_DIR = "./presets"
DEFAULT_FLOW_DIR = "./flows"

MAX_SLIDES = 200
WAIT_MS = 5000
ADVANCE_SETTLE_MS = 1500
FORCE_ADVANCE_SETTLE_MS = 1000
DUPLICATE_THRESHOLD = 3

# 初期描画の検出
CANVAS_SELECTOR = "canvas"
CANVAS_TIMEOUT_MS = 60000
RENDER_ATTEMPTS = 5
RENDER_BACKOFF_MS = 3000
RENDER_SETTLE_MS = 5000

# ナビゲーション
NAVIGATION_TIMEOUT_MS = 60000

# パスワード画面
PASSWORD_SELECTOR = 'input[type="password"]'
PASSWORD_PROMPT_TIMEOUT_MS = 8000
POST_AUTH_SETTLE_MS = 5000

# 安定化ポーリング
STABILITY_SETTLE_MS = 300
STABILITY_POLL_MS = 200
STABILITY_MAX_WAIT_MS = 3000

# 空白判定
MIN_FRAME_BYTES = 5000
BLANK_SAMPLES = 4

# フロー一覧 (プロトタイプのサイドバー)
FLOWS_SIDEBAR_SELECTOR = "#prototype-sidebar-panel"
FLOWS_BUTTON_SELECTOR = 'button:has-text("Flows")'
FLOW_ROW_SELECTOR = '[class*="flowRow"]'
SIDEBAR_OPEN_MS = 1000
UNNAMED_FLOW = "Unnamed Flow"

VIEWPORT = {"width": 1280, "height": 800}
DEVICE_SCALE_FACTOR = 2
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--start-maximized",
    "--disable-infobars",
    "--disable-blink-features=AutomationControlled",
]

DEFAULT_PROTOTYPE_NAME = "FigmaSnap_Capture"
