"""
テスト共通のヘルパー
"""
import os
import random
import sys
from io import BytesIO
from unittest.mock import AsyncMock

import pytest
from PIL import Image

# プロジェクトルートをPythonパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def make_png(seed: int, size=(80, 60)) -> bytes:
    """ノイズ画像のPNG (空白判定に引っかからないサイズ)"""
    rng = random.Random(seed)
    raw = bytes(rng.getrandbits(8) for _ in range(size[0] * size[1] * 3))
    buffer = BytesIO()
    Image.frombytes('RGB', size, raw).save(buffer, format='PNG')
    return buffer.getvalue()


def make_page(screenshots=None, title='Onboarding – Figma'):
    """Playwright Page の代わりになる AsyncMock"""
    page = AsyncMock()
    if screenshots is not None:
        page.screenshot = AsyncMock(side_effect=list(screenshots))
    else:
        page.screenshot = AsyncMock(return_value=make_png(0))
    page.wait_for_selector = AsyncMock(return_value=None)
    page.title = AsyncMock(return_value=title)
    page.evaluate = AsyncMock(return_value=0)
    return page


@pytest.fixture
def png():
    return make_png
