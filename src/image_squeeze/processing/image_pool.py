"""编解码池：在固定数量的工作进程上执行解码、预处理与编码。"""

from __future__ import annotations

import asyncio
import itertools
import logging
from concurrent.futures import Executor, ProcessPoolExecutor
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from image_squeeze.core.config import PREPROCESSOR_NAMES, EncodePolicy
from image_squeeze.core.exceptions import CodecPoolError
from image_squeeze.core.models import DecodedImage, EncodedOutput
from image_squeeze.processing.encoders import EncoderOptions, encode_bitmap
from image_squeeze.processing.image_loader import decode_buffer
from image_squeeze.processing.preprocessors import apply_preprocessors

LOGGER = logging.getLogger(__name__)

ExecutorFactory = Callable[..., Executor]


class FutureState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def future_state(future: "asyncio.Future[Any]") -> FutureState:
    """将 asyncio Future 映射为显式的三态。"""

    if not future.done():
        return FutureState.PENDING
    if future.cancelled() or future.exception() is not None:
        return FutureState.FAILED
    return FutureState.READY


class EncodeRequest:
    """一次编码请求：编码器名称 -> 参数（``"auto"`` 或对象），以及寻优策略。"""

    __slots__ = ("encoders", "policy")

    def __init__(self, encoders: Mapping[str, EncoderOptions], policy: Optional[EncodePolicy] = None) -> None:
        self.encoders = dict(encoders)
        self.policy = policy or EncodePolicy()


class ImageHandle:
    """池中一张图片的句柄，持有当前（可能经过预处理的）解码结果。"""

    def __init__(self, handle_id: int, decoded: "asyncio.Future[DecodedImage]") -> None:
        self.handle_id = handle_id
        self._decoded = decoded
        self.encoded_with: dict[str, asyncio.Future[EncodedOutput]] = {}

    @property
    def state(self) -> FutureState:
        return future_state(self._decoded)

    async def decoded(self) -> DecodedImage:
        """等待解码（及已提交的预处理）完成，可重复等待。"""

        return await asyncio.shield(self._decoded)

    def __repr__(self) -> str:
        return f"ImageHandle(id={self.handle_id}, state={self.state.value})"


class ImagePool:
    """固定大小的编解码工作池，必须且只能关闭一次。

    所有方法都需要在运行中的事件循环里调用；CPU 密集的工作交给
    ``executor_factory`` 创建的执行器（默认为进程池）。
    """

    def __init__(self, concurrency: int, *, executor_factory: ExecutorFactory = ProcessPoolExecutor) -> None:
        if concurrency < 1:
            raise CodecPoolError(f"并发数必须为正整数: {concurrency}")
        try:
            self._executor = executor_factory(max_workers=concurrency)
        except (OSError, ValueError) as exc:
            raise CodecPoolError(f"无法启动编解码池: {exc}") from exc
        self.num_workers = concurrency
        self._closed = False
        self._ids = itertools.count(1)
        LOGGER.debug("编解码池已启动（%d 个工作单元）", concurrency)

    @property
    def closed(self) -> bool:
        return self._closed

    def ingest(self, buffer: bytes) -> ImageHandle:
        """提交解码任务，立即返回句柄。"""

        self._ensure_open()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, decode_buffer, buffer)
        return ImageHandle(next(self._ids), future)

    def preprocess(self, handle: ImageHandle, options: Mapping[str, Any]) -> None:
        """在解码完成后串接预处理，结果通过 ``handle.decoded()`` 观察。"""

        self._ensure_open()
        known = {name: value for name, value in options.items() if name in PREPROCESSOR_NAMES}
        for name in options.keys() - known.keys():
            LOGGER.debug("忽略未知的预处理器：%s", name)
        if not known:
            return
        previous = handle._decoded
        handle._decoded = asyncio.ensure_future(self._run_preprocess(previous, known))

    def encode(self, handle: ImageHandle, request: EncodeRequest) -> dict[str, asyncio.Future[EncodedOutput]]:
        """为请求中的每个编码器提交一个编码任务。"""

        self._ensure_open()
        futures: dict[str, asyncio.Future[EncodedOutput]] = {}
        for name, options in request.encoders.items():
            future = asyncio.ensure_future(self._run_encode(handle, name, options, request.policy))
            handle.encoded_with[name] = future
            futures[name] = future
        return futures

    async def close(self) -> None:
        """等待工作单元退出并释放资源。"""

        if self._closed:
            raise CodecPoolError("编解码池已关闭，不能重复关闭")
        self._closed = True
        try:
            await asyncio.to_thread(self._executor.shutdown, wait=True)
        except Exception as exc:  # noqa: BLE001
            raise CodecPoolError(f"关闭编解码池失败: {exc}") from exc
        LOGGER.debug("编解码池已关闭")

    async def __aenter__(self) -> "ImagePool":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _run_preprocess(
        self, previous: "asyncio.Future[DecodedImage]", options: Mapping[str, Any]
    ) -> DecodedImage:
        decoded = await previous
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, apply_preprocessors, decoded, options)

    async def _run_encode(
        self, handle: ImageHandle, name: str, options: EncoderOptions, policy: EncodePolicy
    ) -> EncodedOutput:
        decoded = await handle.decoded()
        loop = asyncio.get_running_loop()
        output = await loop.run_in_executor(self._executor, encode_bitmap, decoded.bitmap, name, options, policy)
        notes = [*decoded.notes, output.info_text] if output.info_text else list(decoded.notes)
        output.info_text = ", ".join(notes) or None
        return output

    def _ensure_open(self) -> None:
        if self._closed:
            raise CodecPoolError("编解码池已关闭")
