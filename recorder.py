"""Microphone capture collaborator."""

from __future__ import annotations

import logging
import tempfile
import threading
import time
import uuid
import wave
from pathlib import Path
from typing import Any, Callable, Optional

from errors import ERR_AUDIO, ERR_MIC_BUSY, ERR_MIC_NOT_FOUND, CommandError
from models import AudioFrame, CaptureResult

logger = logging.getLogger(__name__)

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

LevelCallback = Callable[[int], None]


def compute_level(samples: Any) -> int:
    """Map int16 samples to a 0-100 level using RMS on a dBFS scale."""
    if np is None:
        return 0
    data = np.asarray(samples, dtype=np.float32)
    if data.size == 0:
        return 0
    rms = float(np.sqrt(np.mean(np.square(data / 32768.0))))
    if rms <= 0.0:
        return 0
    db = 20.0 * float(np.log10(rms))
    # -60 dBFS and below is silence, 0 dBFS is full scale
    return int(max(0.0, min(100.0, (db + 60.0) / 60.0 * 100.0)))


def _map_device_error(exc: Exception) -> CommandError:
    low = str(exc).lower()
    if "no default input" in low or "invalid device" in low or "no input" in low:
        return CommandError(ERR_MIC_NOT_FOUND, str(exc))
    if "unavailable" in low or "busy" in low:
        return CommandError(ERR_MIC_BUSY, str(exc))
    return CommandError(ERR_AUDIO, str(exc))


class SoundDeviceCapture:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 10,
        output_dir: Optional[Path] = None,
        on_level: Optional[LevelCallback] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.output_dir = output_dir or Path(tempfile.gettempdir()) / "voxdesk"
        self.on_level = on_level
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._frames: list[AudioFrame] = []
        self._started_at = 0.0
        self._fault: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running

    def start_capture(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise CommandError(ERR_AUDIO, "sounddevice is not installed")
            self._frames = []
            self._fault = None
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                    finished_callback=self._on_finished,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                raise _map_device_error(exc) from exc
            self._started_at = time.monotonic()
            self._running = True

    def stop_capture(self) -> CaptureResult:
        with self._lock:
            if not self._running:
                raise CommandError(ERR_AUDIO, "capture is not running")
            self._running = False
            duration_ms = int((time.monotonic() - self._started_at) * 1000)
            self._close_stream()
            frames, self._frames = self._frames, []
        path = self._write_wav(frames)
        return CaptureResult(path=str(path), duration_ms=duration_ms)

    def discard(self, path: str) -> None:
        target = Path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            pass

    def poll_health(self) -> Optional[str]:
        with self._lock:
            if not self._running:
                return None
            if self._fault:
                return self._fault
            stream = self._stream
            if stream is not None and not stream.active:
                return "audio stream stopped unexpectedly"
        return None

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        if status and getattr(status, "input_overflow", False):
            logger.debug("input overflow")
        samples = np.asarray(indata, dtype=np.int16)
        self._frames.append(
            AudioFrame(
                pcm16_bytes=samples.tobytes(),
                sample_rate=self.sample_rate,
                channels=self.channels,
                timestamp_ms=int(time.time() * 1000),
            )
        )
        if self.on_level:
            self.on_level(compute_level(samples))

    def _on_finished(self) -> None:
        if self._running:
            self._fault = "audio device disconnected"

    def _close_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            finally:
                self._stream = None

    def _write_wav(self, frames: list[AudioFrame]) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"recording-{uuid.uuid4().hex}.wav"
        with wave.open(str(path), "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(2)
            wf.setframerate(self.sample_rate)
            for frame in frames:
                wf.writeframes(frame.pcm16_bytes)
        return path
