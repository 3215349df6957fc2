"""
スライドキャプチャループのテスト
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from figmasnap.capture import CaptureLoop, capture_prototype, capture_targets, discover_prototype_flows, run_guided_flow
from figmasnap.constants import NAVIGATION_TIMEOUT_MS
from figmasnap.flows import create_guided_flow
from figmasnap.errors import FigmaSnapError, InvalidFlowError, InvalidPrototypeUrlError, OutputDirectoryError
from figmasnap.interactions import authenticate_if_prompted, discover_flows, open_target, wait_for_initial_render
from figmasnap.models import CaptureResult, TerminationReason
from figmasnap.status import CollectingStatusSink, StatusType

from conftest import make_page, make_png

URL = 'https://www.figma.com/proto/abc123/Onboarding'


@pytest.fixture
def config(tmp_path):
    return {
        'url': URL,
        'output_dir': str(tmp_path),
        'max_slides': 10,
        'wait_ms': 0,
        'preset': 'clean',
    }


def pressed_keys(page):
    return [c.args[0] for c in page.keyboard.press.await_args_list]


class TestCaptureLoop:
    """CaptureLoop のテスト"""

    @pytest.mark.asyncio
    async def test_stops_after_three_duplicates(self, config, tmp_path):
        a, b, c = make_png(1), make_png(2), make_png(3)
        # 先頭は初期描画チェック用のキャプチャ
        page = make_page([a, a, b, c, c, c, c])
        status = CollectingStatusSink()

        result = await CaptureLoop(page, config, status).run(URL)

        assert result.reason == TerminationReason.VISUAL_END
        assert [f.data for f in result.frames] == [a, b, c]
        assert [f.index for f in result.frames] == [1, 2, 3]
        assert page.screenshot.await_count == 7
        assert sorted(p.name for p in tmp_path.glob('slide_*.png')) == ['slide_001.png', 'slide_002.png', 'slide_003.png']
        assert result.document_path is not None and result.document_path.exists()
        assert result.document_path.name.startswith('Onboarding_')
        assert result.success
        progress = status.of_type(StatusType.PROGRESS)
        assert [e.current for e in progress] == [1, 2, 3, 4, 5, 6]
        assert progress[0].total == 10
        assert status.events[-1].type == StatusType.SUCCESS
        assert 'Compiled 3 slides' in status.events[-1].message

    @pytest.mark.asyncio
    async def test_password_failure_does_not_stop_capture(self, config):
        a, b = make_png(1), make_png(2)
        page = make_page([a, a, b, b, b, b])
        page.wait_for_selector = AsyncMock(return_value=Mock())
        page.fill = AsyncMock(side_effect=PlaywrightError('element is not attached to the DOM'))
        config['password'] = 'secret'
        status = CollectingStatusSink()

        result = await CaptureLoop(page, config, status).run(URL)

        assert [f.data for f in result.frames] == [a, b]
        assert result.success
        assert status.of_type(StatusType.WARNING)

    @pytest.mark.asyncio
    async def test_document_has_one_page_per_kept_frame(self, config):
        a, b = make_png(1), make_png(2)
        page = make_page([a, a, b, b, b, b])
        loop = CaptureLoop(page, config, CollectingStatusSink())

        with patch.object(loop.assembler, 'create_document', wraps=loop.assembler.create_document) as spy:
            await loop.run(URL)

        frames, preset = spy.call_args.args
        assert len(frames) == 2
        assert preset.name == 'clean'

    @pytest.mark.asyncio
    async def test_force_advance_after_duplicate(self, config):
        a = make_png(1)
        page = make_page([a, a, a, a, a])
        await CaptureLoop(page, config, CollectingStatusSink()).run(URL)

        # 1枚目: ArrowRight のみ、重複後は Space も送る
        assert pressed_keys(page) == ['ArrowRight', 'ArrowRight', 'Space', 'ArrowRight', 'Space']

    @pytest.mark.asyncio
    async def test_stops_at_max_slides(self, config):
        config['max_slides'] = 3
        page = make_page([make_png(i) for i in range(5)])

        result = await CaptureLoop(page, config, CollectingStatusSink()).run(URL)

        assert result.reason == TerminationReason.MAX_SLIDES
        assert len(result.frames) == 3

    @pytest.mark.asyncio
    async def test_duplicate_threshold_is_configurable(self, config):
        config['duplicate_threshold'] = 1
        a, b = make_png(1), make_png(2)
        page = make_page([a, a, b, b])

        result = await CaptureLoop(page, config, CollectingStatusSink()).run(URL)

        assert result.reason == TerminationReason.VISUAL_END
        assert len(result.frames) == 2

    @pytest.mark.asyncio
    async def test_stakeholder_preset_adds_cover(self, config):
        config['preset'] = 'stakeholder'
        a = make_png(1)
        page = make_page([a, a, a, a, a])
        loop = CaptureLoop(page, config, CollectingStatusSink())

        with patch.object(loop.assembler, 'add_cover_page', wraps=loop.assembler.add_cover_page) as spy:
            await loop.run(URL)

        spy.assert_called_once()
        assert spy.call_args.args[1] == 'Onboarding'

    @pytest.mark.asyncio
    async def test_redaction_and_labels(self, config):
        config.update(redact=True, label_frames=True, preset='client-signoff')
        a, b = make_png(1), make_png(2)
        page = make_page([a, a, b, b, b, b], title='Step One – Figma')

        result = await CaptureLoop(page, config, CollectingStatusSink()).run(URL)

        assert page.evaluate.await_count == 5
        assert result.frames[0].label == 'Step One'

    def test_zero_frames_reports_error(self, config):
        status = CollectingStatusSink()
        loop = CaptureLoop(make_page(), config, status)
        result = CaptureResult(url=URL)

        loop.finalize(result)

        assert result.document_path is None
        assert not result.success
        assert status.events[-1].type == StatusType.ERROR
        assert 'No slides were captured' in status.events[-1].message


class TestPageInteractions:
    """パスワード入力・初期描画待ちのテスト"""

    @pytest.mark.asyncio
    async def test_password_prompt_filled(self):
        page = make_page()
        page.wait_for_selector = AsyncMock(return_value=Mock())

        assert await authenticate_if_prompted(page, 'secret', CollectingStatusSink()) is True

        page.fill.assert_awaited_once_with('input[type="password"]', 'secret')
        page.keyboard.press.assert_awaited_once_with('Enter')

    @pytest.mark.asyncio
    async def test_no_password_prompt(self):
        page = make_page()
        page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError('timeout'))

        assert await authenticate_if_prompted(page, 'secret', CollectingStatusSink()) is False
        page.fill.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_render_is_only_a_warning(self):
        page = make_page([b''] * 5)
        status = CollectingStatusSink()

        rendered = await wait_for_initial_render(page, status, backoff_ms=0, settle_ms=0)

        assert rendered is False
        assert page.screenshot.await_count == 5
        assert len(status.of_type(StatusType.WARNING)) == 1

    @pytest.mark.asyncio
    async def test_canvas_timeout_is_only_a_warning(self):
        page = make_page()
        page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError('timeout'))
        status = CollectingStatusSink()

        assert await wait_for_initial_render(page, status) is False
        assert status.of_type(StatusType.WARNING)[0].message == 'Vision sensor timed out. Proceeding...'

    @pytest.mark.asyncio
    async def test_password_submit_failure_is_only_a_warning(self):
        page = make_page()
        page.wait_for_selector = AsyncMock(return_value=Mock())
        page.fill = AsyncMock(side_effect=PlaywrightError('element is not attached to the DOM'))
        status = CollectingStatusSink()

        assert await authenticate_if_prompted(page, 'secret', status) is False
        assert 'Could not submit password' in status.of_type(StatusType.WARNING)[0].message

    @pytest.mark.asyncio
    async def test_render_sensing_error_is_only_a_warning(self):
        page = make_page()
        page.screenshot = AsyncMock(side_effect=PlaywrightError('Target crashed'))
        status = CollectingStatusSink()

        assert await wait_for_initial_render(page, status, settle_ms=0) is False
        assert status.of_type(StatusType.WARNING)[0].message == 'Vision sensor timed out. Proceeding...'

    @pytest.mark.asyncio
    async def test_navigation_has_a_time_limit(self):
        page = make_page()

        await open_target(page, URL, CollectingStatusSink())

        page.goto.assert_awaited_once_with(URL, wait_until='load', timeout=NAVIGATION_TIMEOUT_MS)
        assert NAVIGATION_TIMEOUT_MS > 0

    @pytest.mark.asyncio
    async def test_navigation_timeout_continues(self):
        page = make_page()
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError('Timeout 60000ms exceeded'))
        status = CollectingStatusSink()

        await open_target(page, URL, status)

        assert 'Page load timed out' in status.of_type(StatusType.WARNING)[0].message
        page.wait_for_load_state.assert_awaited_once_with('networkidle')


class TestDiscoverFlows:
    """サイドバーからのフロー一覧取得のテスト"""

    @staticmethod
    def row(node_id, text, with_label=True):
        row = AsyncMock()
        row.get_attribute = AsyncMock(return_value=node_id)
        if with_label:
            label = AsyncMock()
            label.inner_text = AsyncMock(return_value=text)
            row.query_selector = AsyncMock(return_value=label)
        else:
            row.query_selector = AsyncMock(return_value=None)
            row.inner_text = AsyncMock(return_value=text)
        return row

    @pytest.mark.asyncio
    async def test_opens_sidebar_and_reads_rows(self):
        page = make_page()
        button = AsyncMock()
        page.query_selector = AsyncMock(side_effect=[None, button])
        page.query_selector_all = AsyncMock(return_value=[
            self.row('1:2', ' Onboarding '),
            self.row(None, 'Header row'),
            self.row('3:4', '', with_label=False),
        ])
        status = CollectingStatusSink()

        flows = await discover_flows(page, status)

        assert flows == [{'name': 'Onboarding', 'nodeId': '1:2'}, {'name': 'Unnamed Flow', 'nodeId': '3:4'}]
        button.click.assert_awaited_once()
        page.query_selector_all.assert_awaited_once_with('[class*="flowRow"]')
        assert status.events[-1].message == 'Discovered 2 flows'

    @pytest.mark.asyncio
    async def test_open_sidebar_is_not_toggled(self):
        page = make_page()
        page.query_selector = AsyncMock(return_value=Mock())
        page.query_selector_all = AsyncMock(return_value=[self.row('5:6', 'Checkout')])

        flows = await discover_flows(page, CollectingStatusSink())

        assert flows == [{'name': 'Checkout', 'nodeId': '5:6'}]
        page.query_selector.assert_awaited_once_with('#prototype-sidebar-panel')

    @pytest.mark.asyncio
    async def test_read_failure_returns_empty_list(self):
        page = make_page()
        page.query_selector = AsyncMock(return_value=Mock())
        page.query_selector_all = AsyncMock(side_effect=PlaywrightError('Execution context was destroyed'))
        status = CollectingStatusSink()

        assert await discover_flows(page, status) == []
        assert status.of_type(StatusType.WARNING)


class TestEntryPoints:
    """capture_prototype / capture_targets / run_guided_flow のテスト"""

    @pytest.mark.asyncio
    async def test_invalid_url_is_fatal(self, config):
        config['url'] = 'https://example.com/deck'
        status = CollectingStatusSink()
        with patch('figmasnap.capture.BrowserSession') as session:
            with pytest.raises(InvalidPrototypeUrlError):
                await capture_prototype(config, status)
        session.assert_not_called()
        assert status.events[-1].type == StatusType.ERROR

    @pytest.mark.asyncio
    async def test_output_dir_failure_is_fatal(self, config, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')
        config['output_dir'] = str(blocker / 'sub')
        with patch('figmasnap.capture.BrowserSession') as session:
            with pytest.raises(OutputDirectoryError):
                await capture_prototype(config, CollectingStatusSink())
        session.assert_not_called()

    @pytest.mark.asyncio
    async def test_browser_released_on_error(self, config):
        page = make_page()
        page.goto = AsyncMock(side_effect=RuntimeError('crash'))
        session = AsyncMock()
        session.__aenter__.return_value = page
        session.__aexit__.return_value = False

        with patch('figmasnap.capture.BrowserSession', return_value=session):
            with pytest.raises(RuntimeError):
                await capture_prototype(config, CollectingStatusSink())

        session.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_targets_continue_after_failure(self, config):
        status = CollectingStatusSink()
        ok = CaptureResult(url=URL)
        capture = AsyncMock(side_effect=[FigmaSnapError('boom'), ok])

        with patch('figmasnap.capture.capture_prototype', capture):
            results = await capture_targets(config, ['1-2', '3-4'], status)

        assert len(results) == 2
        assert results[1] is ok
        urls = [c.kwargs['url'] for c in capture.await_args_list]
        assert urls == [URL + '?node-id=1-2', URL + '?node-id=3-4']
        errors = status.of_type(StatusType.ERROR)
        assert errors[0].message == '[Flow 1/2] Scraper error: boom'

    @pytest.mark.asyncio
    async def test_single_target_without_node_id(self, config):
        capture = AsyncMock(return_value=CaptureResult(url=URL))
        with patch('figmasnap.capture.capture_prototype', capture):
            await capture_targets(config, [], CollectingStatusSink())
        assert capture.await_args.kwargs['url'] == URL

    @pytest.mark.asyncio
    async def test_discovered_flow_names_label_targets(self, config):
        capture = AsyncMock(return_value=CaptureResult(url=URL))
        with patch('figmasnap.capture.capture_prototype', capture):
            await capture_targets(config, ['1:2', '3:4'], CollectingStatusSink(), labels=['Onboarding'])
        assert [c.args[0]['flow_label'] for c in capture.await_args_list] == ['Onboarding', 'Flow 2']

    @pytest.mark.asyncio
    async def test_discover_prototype_flows_releases_browser(self, config):
        page = make_page()
        page.query_selector = AsyncMock(return_value=Mock())
        page.query_selector_all = AsyncMock(return_value=[])
        session = AsyncMock()
        session.__aenter__.return_value = page
        session.__aexit__.return_value = False

        with patch('figmasnap.capture.BrowserSession', return_value=session):
            flows = await discover_prototype_flows(config, CollectingStatusSink())

        assert flows == []
        page.goto.assert_awaited_once()
        session.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_guided_flow_single_capture(self, config):
        flow = create_guided_flow(URL, [{'action': 'click', 'selector': '#go', 'waitAfter': None}], name='Go')
        page = make_page()
        session = AsyncMock()
        session.__aenter__.return_value = page
        session.__aexit__.return_value = False
        status = CollectingStatusSink()

        with patch('figmasnap.capture.BrowserSession', return_value=session):
            result = await run_guided_flow(flow, config, status)

        page.click.assert_awaited_once_with('#go')
        assert len(result.frames) == 1
        assert result.success
        assert any(e.message == 'Guided flow completed' for e in status.events)

    @pytest.mark.asyncio
    async def test_guided_flow_requires_config(self, config):
        with pytest.raises(InvalidFlowError):
            await run_guided_flow(None, config, CollectingStatusSink())
