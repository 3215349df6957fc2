"""
ガイドフロー (宣言的なステップ列) の作成と実行
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from .constants import STABILITY_MAX_WAIT_MS, STABILITY_POLL_MS
from .errors import InvalidFlowError
from .models import FlowAction, FlowConfig, FlowOptions, FlowStep
from .stability import wait_for_stable_frame
from .status import LoggingStatusSink, StatusSink

logger = logging.getLogger(__name__)

DEFAULT_WAIT_STEP_MS = 2000


def create_guided_flow(url: str, steps: Optional[List[Dict[str, Any]]] = None,
                       options: Optional[Dict[str, Any]] = None, name: Optional[str] = None) -> FlowConfig:
    """ステップとオプションに既定値を補ってフロー設定を作る"""
    normalized = []
    for step in steps or []:
        normalized.append(FlowStep.from_record({
            **step,
            'action': step.get('action') or 'click',
            'description': step.get('description') or '',
            'waitAfter': step.get('waitAfter') or 2000,
        }))
    return FlowConfig(steps=tuple(normalized), options=FlowOptions.from_record(options), url=url, name=name)


class FlowState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


class GuidedFlowExecutor:
    """ステップを順に実行する。個々のステップの失敗では中断しない"""

    def __init__(self, page: Page, status: Optional[StatusSink] = None,
                 stability_timeout_ms: int = STABILITY_MAX_WAIT_MS):
        self.page = page
        self.status = status or LoggingStatusSink()
        self.stability_timeout_ms = stability_timeout_ms
        self.state = FlowState.IDLE
        self.step_index: Optional[int] = None
        self.attempted = 0
        self.failed: List[int] = []

    async def execute(self, flow: Optional[FlowConfig]):
        if flow is None or getattr(flow, 'steps', None) is None:
            self.state = FlowState.FAILED
            raise InvalidFlowError('Invalid flow configuration')

        self.state = FlowState.RUNNING
        total = len(flow.steps)
        self.status.info(f"Starting guided flow: {flow.name or 'Unnamed Flow'}")

        for i, step in enumerate(flow.steps):
            self.step_index = i
            self.attempted += 1
            self.status.info(f"Step {i + 1}/{total}: {step.description or step.action.value}")
            try:
                await self.run_step(step)
                if step.wait_after:
                    await self.page.wait_for_timeout(step.wait_after)
                await self.wait_for_visual_stability()
            except Exception as e:
                # 失敗したステップは警告だけ出して次へ進む
                self.failed.append(i)
                self.status.warning(f"Step {i + 1} failed: {e}")

        self.state = FlowState.COMPLETED
        self.step_index = None
        self.status.success('Guided flow completed')

    async def run_step(self, step: FlowStep):
        page = self.page
        if step.action == FlowAction.TYPE:
            await page.type(step.selector, step.text or '')
        elif step.action == FlowAction.WAIT:
            await page.wait_for_timeout(step.duration or DEFAULT_WAIT_STEP_MS)
        elif step.action == FlowAction.NAVIGATE:
            await page.goto(step.url)
        else:
            if step.raw_action and step.raw_action != FlowAction.CLICK.value:
                logger.debug(f"Unknown action '{step.raw_action}', treating as click")
            await page.click(step.selector)

    async def wait_for_visual_stability(self) -> bytes:
        return await wait_for_stable_frame(
            lambda: self.page.screenshot(full_page=False),
            max_wait_ms=self.stability_timeout_ms,
            poll_interval_ms=STABILITY_POLL_MS,
            sleep=self.page.wait_for_timeout,
        )
