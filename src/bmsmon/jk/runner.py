from __future__ import annotations

import logging
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import serial
import typer

from .config import BmsConfig, load_config
from .display import format_report
from .frames import FRAME_MAGIC, POLL_COMMAND, FrameError, iterate_hex_frames
from .processing import Report, ReportPipeline

logger = logging.getLogger(__name__)

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUDRATE = 115200


@dataclass
class SerialSettings:
    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    timeout: float = 2.0


class SerialTransport:
    """
    Request/response wrapper around one serial port.

    Responses are assembled from the 0x4E57 header and the 16-bit length that
    follows it (number of bytes after the header).
    """

    def __init__(self, settings: SerialSettings, chunk_size: int = 256) -> None:
        self.settings = settings
        self._chunk_size = max(chunk_size, 16)
        self._serial = None
        self._buffer = bytearray()
        self._log = logging.getLogger(__name__)

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    def open(self) -> None:
        self._serial = serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            timeout=self.settings.timeout,
        )
        self._buffer.clear()

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except Exception:
            self._log.debug("Error closing %s", self.settings.port, exc_info=True)
        finally:
            self._serial = None

    def request(self, command: bytes = POLL_COMMAND) -> bytes:
        if self._serial is None:
            raise RuntimeError("Serial port is not open")
        self._buffer.clear()
        self._serial.reset_input_buffer()
        self._serial.write(command)
        self._serial.flush()
        return self.read_frame()

    def read_frame(self) -> bytes:
        if self._serial is None:
            raise RuntimeError("Serial port is not open")
        deadline = time.monotonic() + self.settings.timeout
        while True:
            frame = self._extract_frame()
            if frame is not None:
                return frame
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"No complete frame from {self.settings.port} within {self.settings.timeout:.1f}s"
                )
            waiting = getattr(self._serial, "in_waiting", 0) or 1
            chunk = self._serial.read(min(waiting, self._chunk_size))
            if chunk:
                self._buffer.extend(chunk)

    def _extract_frame(self) -> Optional[bytes]:
        start = self._buffer.find(FRAME_MAGIC)
        if start < 0:
            # Keep the last byte, it may be the first half of the next header
            del self._buffer[: max(len(self._buffer) - 1, 0)]
            return None
        if start > 0:
            self._log.debug("Skipping %d bytes before frame header", start)
            del self._buffer[:start]
        if len(self._buffer) < 4:
            return None
        frame_len = 2 + int.from_bytes(self._buffer[2:4], "big")
        if len(self._buffer) < frame_len:
            return None
        frame = bytes(self._buffer[:frame_len])
        del self._buffer[:frame_len]
        return frame


class BmsPoller:
    """Poll loop for one BMS: connect, poll, decode, wait, and reconnect on errors."""

    def __init__(
        self,
        settings: SerialSettings,
        config: BmsConfig,
        transport: Optional[SerialTransport] = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.transport = transport or SerialTransport(settings, config.host.read_chunk_size)
        self.pipeline = ReportPipeline(config.history_size)
        self.last_exception: Optional[Exception] = None
        self._stop_event = threading.Event()
        self._connected_once = False
        self._reconnects = 0
        self._timeouts = 0
        self._next_stats_log = 0.0

    def run(self, max_reports: Optional[int] = None) -> int:
        initial_delay = max(self.config.host.reconnect_initial_sec, 0.01)
        max_delay = max(self.config.host.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        reports = 0
        self._next_stats_log = time.monotonic() + self._stats_interval()
        while not self._stop_event.is_set():
            try:
                self.transport.open()
                if self._connected_once:
                    self._reconnects += 1
                    logger.info("Reconnected to %s", self.settings.port)
                else:
                    logger.info("Connected to %s", self.settings.port)
                    self._connected_once = True
                self.last_exception = None
                backoff = initial_delay
                # A new session never inherits current samples from the last one
                self.pipeline.reset()
                while not self._stop_event.is_set():
                    if self._poll_once() is not None:
                        reports += 1
                        if max_reports is not None and reports >= max_reports:
                            self._stop_event.set()
                            break
                    self._maybe_log_stats()
                    self._stop_event.wait(max(self.config.host.poll_interval_sec, 0.0))
            except serial.SerialException as exc:
                self.last_exception = exc
                logger.warning("Serial error (%s): %s", self.settings.port, exc)
            except Exception as exc:  # pragma: no cover - keeps the loop alive
                self.last_exception = exc
                logger.exception("Unexpected error in poll loop")
            finally:
                self.transport.close()
            if self._stop_event.is_set():
                break
            wait_time = min(backoff, max_delay)
            logger.info("Reconnecting in %.1fs", wait_time)
            self._stop_event.wait(wait_time)
            backoff = min(backoff * 2, max_delay)
        return reports

    def stop(self) -> None:
        self._stop_event.set()

    def stats(self) -> Dict[str, int]:
        stats = self.pipeline.stats()
        stats["timeouts"] = self._timeouts
        stats["reconnects"] = self._reconnects
        return stats

    def _poll_once(self) -> Optional[Report]:
        try:
            frame = self.transport.request(POLL_COMMAND)
        except TimeoutError as exc:
            self._timeouts += 1
            logger.warning("%s", exc)
            return None
        try:
            return self.pipeline.process(frame)
        except FrameError as exc:
            logger.warning("Discarding frame (%s): %s", exc.kind.value, exc)
            return None

    def _stats_interval(self) -> float:
        return max(float(self.config.host.stats_log_interval), 5.0)

    def _maybe_log_stats(self) -> None:
        now = time.monotonic()
        if now < self._next_stats_log:
            return
        self._next_stats_log = now + self._stats_interval()
        log_stats("Poll stats", self.stats())


def log_stats(prefix: str, stats: Dict[str, int]) -> None:
    logger.info("%s: %s", prefix, " ".join(f"{key}={value}" for key, value in stats.items()))


def _echo_report(report: Report, clear: bool) -> None:
    if clear:
        typer.clear()
    for line in format_report(report):
        typer.echo(line)


app = typer.Typer(add_completion=False, help="JK BMS (0x4E57) host utilities.")


@app.command()
def run(
    port: str = typer.Option(DEFAULT_PORT, "--port", "-p", help="Serial device."),
    baudrate: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baudrate."),
    timeout: float = typer.Option(2.0, "--timeout", help="Seconds to wait for one response frame."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Optional JSON host config.", exists=True, dir_okay=False
    ),
    override: Optional[list[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set history_size=5 --set host.poll_interval_sec=2",
    ),
    interval: Optional[float] = typer.Option(None, "--interval", help="Poll interval in seconds."),
    clear: Optional[bool] = typer.Option(None, "--clear/--no-clear", help="Clear the screen between reports."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Stop after N decoded reports."),
):
    """Poll the BMS once per interval and print every decoded report."""

    try:
        cfg = load_config(config_path, override)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if interval is not None:
        cfg.host.poll_interval_sec = interval
    if clear is not None:
        cfg.clear_screen = clear

    settings = SerialSettings(port=port, baudrate=baudrate, timeout=timeout)
    poller = BmsPoller(settings, cfg)
    poller.pipeline.register_callback(lambda report: _echo_report(report, cfg.clear_screen))
    try:
        poller.run(max_reports=count)
    except KeyboardInterrupt:
        logger.info("Stopping poller (Ctrl+C)")
        poller.stop()
    finally:
        log_stats("Final stats", poller.stats())


@app.command()
def replay(
    input_path: str = typer.Option(..., "--in", help="Hex capture, one frame per line. Use '-' for stdin."),
    history_size: int = typer.Option(10, "--history", help="Current smoothing window."),
):
    """Decode captured frames in order, as if they had been polled live."""

    pipeline = ReportPipeline(history_size)
    if input_path == "-":
        handle = sys.stdin
        close_handle = False
    else:
        path = Path(input_path)
        if not path.is_file():
            raise typer.BadParameter(f"File not found: {input_path}", param_hint="--in")
        handle = path.open("r", encoding="utf-8")
        close_handle = True
    try:
        for frame in iterate_hex_frames(handle):
            try:
                report = pipeline.process(frame)
            except FrameError as exc:
                typer.echo(f"[invalid] {exc.kind.value}: {exc}")
                continue
            _echo_report(report, clear=False)
            typer.echo("")
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc
    finally:
        if close_handle:
            handle.close()
    stats = pipeline.stats()
    typer.echo(" ".join(f"{key}={value}" for key, value in stats.items()))
