# stability.py
import asyncio
import time
from typing import Awaitable, Callable, Optional

from .constants import MIN_FRAME_BYTES, BLANK_SAMPLES, STABILITY_SETTLE_MS, STABILITY_POLL_MS, STABILITY_MAX_WAIT_MS

CaptureFn = Callable[[], Awaitable[bytes]]
SleepFn = Callable[[float], Awaitable[None]]


def sample_offsets(length: int, samples: int = BLANK_SAMPLES):
    """バッファを均等に区切ったオフセット (最後のサンプルは末尾バイト)"""
    samples = max(1, samples)
    return [min(length - 1, (length * k) // samples) for k in range(1, samples + 1)]


def is_blank(buffer: Optional[bytes], samples: int = BLANK_SAMPLES, min_bytes: int = MIN_FRAME_BYTES) -> bool:
    """
    スクリーンショットが「まだ何も描画されていない」ように見えるか

    サンプリングした全バイトが同じ値なら単色とみなす。
    単色のスライドも空白と判定されるが、初期描画の検出にしか使わないので許容する。
    """
    if not buffer or len(buffer) < min_bytes:
        return True
    values = {buffer[offset] for offset in sample_offsets(len(buffer), samples)}
    return len(values) == 1


def frames_equal(a: Optional[bytes], b: Optional[bytes]) -> bool:
    """前回のフレームとバイト単位で完全一致するか"""
    if a is None or b is None:
        return False
    return bytes(a) == bytes(b)


async def _sleep_ms(ms: float) -> None:
    await asyncio.sleep(ms / 1000)


async def wait_for_stable_frame(
    capture: CaptureFn,
    min_wait_ms: float = STABILITY_SETTLE_MS,
    max_wait_ms: float = STABILITY_MAX_WAIT_MS,
    required_stable_samples: int = 2,
    poll_interval_ms: float = STABILITY_POLL_MS,
    sleep: Optional[SleepFn] = None,
) -> bytes:
    """
    連続して同一のキャプチャが required_stable_samples 回得られるまでポーリングする

    max_wait_ms を超えた場合は最後のキャプチャを返す (エラーにはしない)。
    sleep にはミリ秒を受け取るコルーチン (page.wait_for_timeout など) を渡せる。
    """
    sleep = sleep or _sleep_ms
    if min_wait_ms > 0:
        await sleep(min_wait_ms)

    start = time.monotonic()
    last = await capture()
    run = 1
    while run < required_stable_samples:
        if (time.monotonic() - start) * 1000 >= max_wait_ms:
            break
        await sleep(poll_interval_ms)
        current = await capture()
        run = run + 1 if frames_equal(current, last) else 1
        last = current
    return last
