"""Canvas-host side of the request protocol.

``HostEnvironment`` answers the messages posted by ``HostBridge`` using any
``CanvasHost`` implementation. A cancel flag is kept only for a request id
with an operation in flight, and is dropped when that operation ends.
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Protocol, Set

from PIL import Image
from pydantic import TypeAdapter

from figmatron.models.protocol import (
    CancelRequestMessage,
    ContextPacket,
    ContextReadyMessage,
    InsertResultMessage,
    InsertSvgMessage,
    PluginRequestMessage,
    PrepareContextMessage,
    QueryMode,
    RequestCanceledMessage,
    RouteMode,
    SelectionInfo,
    SelectionMetadata,
    SelectionStateMessage,
    estimate_base64_bytes,
)

logger = logging.getLogger(__name__)

DOWNSCALE_STEPS = (1.0, 0.75, 0.5, 0.25)
SELECTION_DEBOUNCE_S = 0.12

_REQUEST_ADAPTER: TypeAdapter[Any] = TypeAdapter(PluginRequestMessage)


class CanvasHost(Protocol):
    """Capabilities the pipeline needs from a design canvas."""

    def selection_info(self) -> SelectionInfo:
        ...

    def read_selection_metadata(self) -> Optional[SelectionMetadata]:
        ...

    async def export_selection_svg(self) -> Optional[str]:
        ...

    async def export_selection_png(self, scale: float) -> Optional[bytes]:
        ...

    async def insert_svg(self, svg: str, mode: QueryMode, route: RouteMode) -> None:
        ...


class HostEnvironment:
    def __init__(self, host: CanvasHost, post_message: Callable[[Any], None]) -> None:
        self.host = host
        self.post_message = post_message
        self.canceled_requests: Set[str] = set()
        self.active_requests: Set[str] = set()
        self._selection_handle: Optional[asyncio.TimerHandle] = None

    @contextmanager
    def _serving(self, request_id: str) -> Iterator[None]:
        """Mark ``request_id`` in flight; its cancel flag dies with the operation."""
        self.active_requests.add(request_id)
        try:
            yield
        finally:
            self.active_requests.discard(request_id)
            self.canceled_requests.discard(request_id)

    def _consume_cancel(self, request_id: str) -> bool:
        if request_id in self.canceled_requests:
            self.canceled_requests.discard(request_id)
            self.post_message(RequestCanceledMessage(request_id=request_id))
            return True
        return False

    async def handle_message(self, message: Any) -> None:
        if isinstance(message, dict):
            message = _REQUEST_ADAPTER.validate_python(message)

        if isinstance(message, CancelRequestMessage):
            # only an operation in flight can observe the flag
            if message.request_id in self.active_requests:
                self.canceled_requests.add(message.request_id)
            self.post_message(RequestCanceledMessage(request_id=message.request_id))
        elif isinstance(message, PrepareContextMessage):
            await self.prepare_context(message)
        elif isinstance(message, InsertSvgMessage):
            await self.insert_svg(message)
        else:
            logger.warning("Unhandled pipeline message: %r", message)

    async def prepare_context(self, message: PrepareContextMessage) -> None:
        with self._serving(message.request_id):
            await self._prepare_context(message)

    async def _prepare_context(self, message: PrepareContextMessage) -> None:
        selection = self.host.selection_info()
        svg: Optional[str] = None
        screenshot: Optional[str] = None
        screenshot_error: Optional[str] = None
        metadata = self.host.read_selection_metadata() if selection.has_selection else None

        if selection.has_selection:
            try:
                svg = await self.host.export_selection_svg()
            except Exception as exc:
                logger.warning("Failed to export selection SVG: %s", exc)
            if message.include_screenshot:
                screenshot, screenshot_error = await self._export_screenshot(message.max_screenshot_bytes)
        elif message.include_screenshot and message.mode == "vectorize":
            screenshot_error = "Select a layer to vectorize."

        if self._consume_cancel(message.request_id):
            return
        self.post_message(ContextReadyMessage(
            request_id=message.request_id,
            context=ContextPacket(
                svg=svg or None,
                metadata=metadata,
                screenshot_png_base64=screenshot,
                screenshot_error=screenshot_error,
                selection_info=selection,
            ),
        ))

    async def _export_screenshot(self, max_bytes: int) -> tuple[Optional[str], Optional[str]]:
        for scale in DOWNSCALE_STEPS:
            try:
                png = await self.host.export_selection_png(scale)
            except Exception as exc:
                logger.warning("Screenshot export failed at scale %.2f: %s", scale, exc)
                return None, f"Screenshot export failed: {exc}"
            if not png:
                return None, "Screenshot export returned no data."
            encoded = base64.b64encode(png).decode("ascii")
            if estimate_base64_bytes(encoded) <= max_bytes:
                return encoded, None
            logger.info("Screenshot at scale %.2f exceeds %d bytes, retrying smaller", scale, max_bytes)
        return None, f"Screenshot exceeds {max_bytes} bytes even at the smallest scale."

    async def insert_svg(self, message: InsertSvgMessage) -> None:
        """Insert the markup and report the result.

        Once the canvas has been changed the reply is the real insertion
        result, even if a cancel arrived meanwhile.
        """
        with self._serving(message.request_id):
            try:
                await self.host.insert_svg(message.svg, message.mode, message.route)
            except Exception as exc:
                logger.warning("SVG insertion failed for %s: %s", message.request_id, exc)
                self.post_message(
                    InsertResultMessage(request_id=message.request_id, success=False, error=str(exc))
                )
                return
            self.post_message(InsertResultMessage(request_id=message.request_id, success=True))

    def selection_changed(self) -> None:
        """Schedule a debounced ``selection-state`` push."""
        loop = asyncio.get_running_loop()
        if self._selection_handle is not None:
            self._selection_handle.cancel()
        self._selection_handle = loop.call_later(SELECTION_DEBOUNCE_S, self._push_selection)

    def _push_selection(self) -> None:
        self._selection_handle = None
        self.post_message(SelectionStateMessage(selection=self.host.selection_info()))


def connect_in_process(bridge: Any, environment: HostEnvironment) -> None:
    """Wire a ``HostBridge`` and a ``HostEnvironment`` on the running loop.

    Messages are delivered on later loop iterations, like a real host channel.
    """
    tasks: Set[asyncio.Task[None]] = set()

    def to_host(message: Any) -> None:
        task = asyncio.get_running_loop().create_task(environment.handle_message(message))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    def to_pipeline(message: Any) -> None:
        asyncio.get_running_loop().call_soon(bridge.handle_message, message)

    bridge.post_message = to_host
    environment.post_message = to_pipeline


class FileCanvasHost:
    """Canvas backed by files: a selection SVG, a selection PNG and an output path."""

    def __init__(
        self,
        *,
        selection_svg: Optional[Path] = None,
        selection_png: Optional[Path] = None,
        output_path: Optional[Path] = None,
    ) -> None:
        self.selection_svg = selection_svg
        self.selection_png = selection_png
        self.output_path = output_path
        self.inserted: list[str] = []

    def selection_info(self) -> SelectionInfo:
        source = self.selection_svg or self.selection_png
        if source is None:
            return SelectionInfo(count=0, has_selection=False)
        return SelectionInfo(
            count=1,
            has_selection=True,
            primary_id=source.stem,
            primary_name=source.name,
            primary_type="FRAME",
        )

    def read_selection_metadata(self) -> Optional[SelectionMetadata]:
        if self.selection_png is None or not self.selection_png.exists():
            return None
        with Image.open(self.selection_png) as img:
            width, height = img.size
        return SelectionMetadata(
            id=self.selection_png.stem,
            name=self.selection_png.name,
            type="FRAME",
            width=width,
            height=height,
            x=0,
            y=0,
        )

    async def export_selection_svg(self) -> Optional[str]:
        if self.selection_svg is None:
            return None
        return self.selection_svg.read_text(encoding="utf-8")

    async def export_selection_png(self, scale: float) -> Optional[bytes]:
        if self.selection_png is None:
            return None
        raw = self.selection_png.read_bytes()
        if scale >= 1.0:
            return raw
        with Image.open(io.BytesIO(raw)) as img:
            size = (max(1, int(img.size[0] * scale)), max(1, int(img.size[1] * scale)))
            resized = img.resize(size, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            resized.save(buffer, format="PNG")
        return buffer.getvalue()

    async def insert_svg(self, svg: str, mode: QueryMode, route: RouteMode) -> None:
        self.inserted.append(svg)
        if self.output_path is not None:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text(svg, encoding="utf-8")
