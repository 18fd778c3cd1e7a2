"""
Local Compositor
================

Chroma-keys the avatar video over a background image with ffmpeg.

ffmpeg is treated as a black box with a command contract: the process runs
under a wall-clock timeout, its diagnostic output is captured into a bounded
buffer, and it is killed on timeout or cancellation.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..core.cancellation import CancelToken
from ..core.config import CompositorConfig
from ..core.exceptions import Cancelled, CompositingFailed

logger = logging.getLogger(__name__)


class _BoundedBuffer:
    """Keeps the last ``limit`` bytes written to it."""

    def __init__(self, limit: int):
        self.limit = limit
        self.truncated = False
        self._data = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        overflow = len(self._data) - self.limit
        if overflow > 0:
            del self._data[:overflow]
            self.truncated = True

    def text(self) -> str:
        text = self._data.decode(errors="replace")
        return f"[output truncated]\n{text}" if self.truncated else text


class LocalCompositor:
    """
    Overlays a green-keyed foreground video on a background image.

    The output frame is always ``width`` x ``height`` (1080x1920 by default):
    the background is scaled to fit and padded, the keyed foreground is
    centered on top, and the output stops with the shorter input.
    """

    def __init__(self, config: Optional[CompositorConfig] = None):
        self.config = config or CompositorConfig()

    def build_filter_graph(self) -> str:
        """ffmpeg filter graph: fit background, key foreground, overlay."""
        c = self.config
        width, height = c.width, c.height
        return (
            f"[0:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2[bg];"
            f"[1:v]chromakey={c.key_color}:{c.similarity}:{c.blend}[fg];"
            f"[bg][fg]overlay=(W-w)/2:(H-h)/2:format=auto:shortest=1[out]"
        )

    def build_command(
        self,
        foreground_video: Union[str, Path],
        background_image: Union[str, Path],
        output_path: Union[str, Path],
    ) -> List[str]:
        """Build the ffmpeg argument list."""
        c = self.config
        return [
            c.ffmpeg_path, "-y",
            "-hide_banner",
            "-loglevel", "warning",
            "-loop", "1",
            "-i", str(background_image),
            "-i", str(foreground_video),
            "-filter_complex", self.build_filter_graph(),
            "-map", "[out]",
            "-map", "1:a?",
            "-c:v", c.video_codec,
            "-preset", c.preset,
            "-crf", str(c.crf),
            "-c:a", "copy",
            "-shortest",
            str(output_path),
        ]

    async def composite(
        self,
        foreground_video: Union[str, Path],
        background_image: Union[str, Path],
        output_path: Union[str, Path],
        cancel_token: Optional[CancelToken] = None,
    ) -> Path:
        """
        Composite the foreground video over the background image.

        Returns:
            Path to the output video

        Raises:
            CompositingFailed: non-zero exit, timeout, missing binary, or no output
            Cancelled: the cancel token tripped while ffmpeg was running
        """
        output_path = Path(output_path)
        cmd = self.build_command(foreground_video, background_image, output_path)

        logger.info("Compositing video with background...")
        logger.debug(f"ffmpeg command: {' '.join(cmd)}")

        exit_code, diagnostics = await self._run(cmd, cancel_token)

        if exit_code != 0:
            logger.error(f"ffmpeg exited with {exit_code}: {diagnostics[-2000:]}")
            raise CompositingFailed(
                f"ffmpeg exited with status {exit_code}",
                diagnostic_output=diagnostics,
                exit_code=exit_code,
            )

        if diagnostics.strip():
            logger.warning(f"ffmpeg warnings: {diagnostics.strip()[-2000:]}")

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise CompositingFailed(
                "ffmpeg reported success but produced no output",
                diagnostic_output=diagnostics,
                exit_code=exit_code,
            )

        logger.info(f"Composited video created at: {output_path}")
        return output_path

    async def _run(self, cmd: List[str], cancel_token: Optional[CancelToken]) -> Tuple[int, str]:
        """Run ffmpeg under the timeout and cancel token; return (exit code, stderr)."""
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise CompositingFailed(f"Could not start {cmd[0]}: {e}")

        capture = _BoundedBuffer(self.config.max_output_bytes)

        async def drain() -> int:
            while True:
                chunk = await process.stderr.read(8192)
                if not chunk:
                    break
                capture.feed(chunk)
            return await process.wait()

        drain_task = asyncio.ensure_future(drain())
        waiters = {drain_task}
        cancel_task = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.config.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._kill(process, drain_task)
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        if drain_task in done:
            return drain_task.result(), capture.text()

        await self._kill(process, drain_task)

        if cancel_token is not None and cancel_token.cancelled:
            raise Cancelled(f"Compositing cancelled: {cancel_token.reason}")

        raise CompositingFailed(
            f"ffmpeg timed out after {self.config.timeout:g} seconds",
            diagnostic_output=capture.text(),
            timed_out=True,
        )

    @staticmethod
    async def _kill(process, drain_task: "asyncio.Future") -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        drain_task.cancel()
        try:
            await drain_task
        except asyncio.CancelledError:
            pass
        await process.wait()
