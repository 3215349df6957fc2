# interactions.py
import logging
from typing import Dict, List, Optional

from playwright.async_api import Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from .constants import (
    CANVAS_SELECTOR, CANVAS_TIMEOUT_MS, RENDER_ATTEMPTS, RENDER_BACKOFF_MS, RENDER_SETTLE_MS,
    PASSWORD_SELECTOR, PASSWORD_PROMPT_TIMEOUT_MS, POST_AUTH_SETTLE_MS,
    ADVANCE_SETTLE_MS, FORCE_ADVANCE_SETTLE_MS, VIEWPORT, NAVIGATION_TIMEOUT_MS,
    FLOWS_SIDEBAR_SELECTOR, FLOWS_BUTTON_SELECTOR, FLOW_ROW_SELECTOR, SIDEBAR_OPEN_MS, UNNAMED_FLOW,
)
from .stability import is_blank
from .status import StatusSink
from .utils import label_from_title

logger = logging.getLogger(__name__)

REDACTION_SCRIPT = """
() => {
    const targets = document.querySelectorAll('[aria-label*="[mask]"]');
    let masked = 0;
    targets.forEach(target => {
        const rect = target.getBoundingClientRect();
        if (target.dataset.figmasnapMasked === 'true' || rect.width <= 0 || rect.height <= 0) return;
        const mask = document.createElement('div');
        mask.className = 'figmasnap-mask';
        Object.assign(mask.style, {
            position: 'fixed',
            left: rect.left + 'px',
            top: rect.top + 'px',
            width: rect.width + 'px',
            height: rect.height + 'px',
            backgroundColor: 'black',
            zIndex: '2147483647',
            pointerEvents: 'none'
        });
        document.body.appendChild(mask);
        target.dataset.figmasnapMasked = 'true';
        masked++;
    });
    return masked;
}
"""


async def open_target(page: Page, url: str, status: StatusSink):
    status.info(f"Navigating to: {url}")
    try:
        await page.goto(url, wait_until='load', timeout=NAVIGATION_TIMEOUT_MS)
    except PlaywrightTimeoutError:
        status.warning(f"Page load timed out after {NAVIGATION_TIMEOUT_MS}ms. Proceeding...")
    try:
        await page.wait_for_load_state('networkidle')
    except PlaywrightTimeoutError:
        logger.info("networkidle timeout, continuing")


async def authenticate_if_prompted(page: Page, password: Optional[str], status: StatusSink) -> bool:
    """パスワード入力欄があれば入力して送信する。無ければ何もしない"""
    status.info("Checking for security prompts...")
    try:
        prompt = await page.wait_for_selector(PASSWORD_SELECTOR, timeout=PASSWORD_PROMPT_TIMEOUT_MS)
    except PlaywrightTimeoutError:
        logger.info("Password prompt not found, continuing")
        return False
    if not prompt:
        return False
    if not password:
        status.warning("Prototype is password protected but no password was provided")
        return False

    status.info("Entering password...")
    try:
        await page.fill(PASSWORD_SELECTOR, password)
        await page.keyboard.press('Enter')
        try:
            await page.wait_for_load_state('networkidle')
        except PlaywrightTimeoutError:
            logger.info("networkidle timeout after login, continuing")
        await page.wait_for_timeout(POST_AUTH_SETTLE_MS)
    except PlaywrightError as e:
        status.warning(f"Could not submit password: {e}")
        return False
    return True


async def wait_for_initial_render(page: Page, status: StatusSink, attempts: int = RENDER_ATTEMPTS,
                                  backoff_ms: int = RENDER_BACKOFF_MS,
                                  settle_ms: int = RENDER_SETTLE_MS) -> bool:
    """
    キャンバスが表示され、空白でない画面が得られるまで待つ

    試行回数を使い切っても警告だけ出してキャプチャを続行する。
    """
    status.info("Waiting for WebGL Canvas (Vision sensing)...")
    rendered = False
    try:
        await page.wait_for_selector(CANVAS_SELECTOR, state='visible', timeout=CANVAS_TIMEOUT_MS)
        for attempt in range(1, attempts + 1):
            if not is_blank(await page.screenshot()):
                rendered = True
                break
            status.info(f"Content not yet visible. sensing... ({attempt}/{attempts})")
            await page.wait_for_timeout(backoff_ms)
        if not rendered:
            status.warning("Content still looks blank. Proceeding...")
    except PlaywrightError as e:
        logger.debug(f"Render sensing failed: {e}")
        status.warning("Vision sensor timed out. Proceeding...")
    await page.wait_for_timeout(settle_ms)
    return rendered


async def focus_canvas(page: Page):
    await page.bring_to_front()
    await page.mouse.click(VIEWPORT['width'] // 2, VIEWPORT['height'] // 2)


async def apply_redaction(page: Page) -> int:
    """aria-label に [mask] を含む要素を黒塗りする"""
    masked = await page.evaluate(REDACTION_SCRIPT)
    if masked:
        logger.debug(f"Masked {masked} regions")
    return masked or 0


async def advance_slide(page: Page, settle_ms: int = ADVANCE_SETTLE_MS):
    await page.keyboard.press('ArrowRight')
    await page.wait_for_timeout(settle_ms)


async def force_advance(page: Page, settle_ms: int = FORCE_ADVANCE_SETTLE_MS):
    await page.keyboard.press('Space')
    await page.wait_for_timeout(settle_ms)


async def read_title(page: Page) -> Optional[str]:
    try:
        return await page.title()
    except Exception as e:
        logger.debug(f"Title parsing error: {e}")
        return None


async def infer_frame_label(page: Page) -> Optional[str]:
    return label_from_title(await read_title(page))


async def discover_flows(page: Page, status: StatusSink) -> List[Dict[str, str]]:
    """
    サイドバーのフロー一覧から {name, nodeId} のリストを作る

    サイドバーが閉じていれば Flows ボタンで開く。node-id の無い行は無視する。
    読み取りに失敗した場合は警告を出して空リストを返す。
    """
    flows = []
    try:
        if not await page.query_selector(FLOWS_SIDEBAR_SELECTOR):
            button = await page.query_selector(FLOWS_BUTTON_SELECTOR)
            if button:
                await button.click()
                await page.wait_for_timeout(SIDEBAR_OPEN_MS)

        for row in await page.query_selector_all(FLOW_ROW_SELECTOR):
            node_id = await row.get_attribute('data-node-id')
            if not node_id:
                continue
            label = await row.query_selector('label') or row
            name = (await label.inner_text() or '').strip()
            flows.append({'name': name or UNNAMED_FLOW, 'nodeId': node_id})
    except PlaywrightError as e:
        status.warning(f"Could not read the flow list: {e}")
        return []
    status.info(f"Discovered {len(flows)} flows")
    return flows
