"""
Readers for sensor boards attached over a serial port (pyserial).

    SerialLineSource  - newline terminated text (the environment board)
    SerialFrameSource - fixed-length binary frames (the ultrasonic sensor)

Both read on a daemon thread and hand each item to a handler; a handler error
is logged and the reader keeps going.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import serial

logger = logging.getLogger(__name__)


class SerialSource:
    """Owns the port and the reader thread; subclasses decide what one item is."""

    def __init__(
        self,
        port: str,
        baud_rate: int,
        handler: Callable[[Any], object],
        *,
        read_timeout: float = 1.0,
        name: str = "SerialSource",
    ) -> None:
        self.port = port
        self.baud_rate = baud_rate
        self._handler = handler
        self._read_timeout = read_timeout
        self.name = name
        self._serial: serial.Serial | None = None
        self._reader: threading.Thread | None = None
        self._stop = threading.Event()
        self.items_read = 0

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def start(self) -> bool:
        """
        Open the port and start reading.

        A port that cannot be opened is logged and the source stays idle; the
        rest of the hub keeps running without this sensor.
        """
        if self._reader is not None:
            return True
        try:
            self._serial = serial.Serial(self.port, self.baud_rate, timeout=self._read_timeout)
        except (serial.SerialException, OSError, ValueError) as e:
            logger.error("Could not open serial port %s: %s", self.port, e)
            self._serial = None
            return False

        self._stop.clear()
        self._reader = threading.Thread(target=self._reader_loop, daemon=True, name=self.name)
        self._reader.start()
        logger.info("Serial port %s opened at %s baud", self.port, self.baud_rate)
        return True

    def stop(self) -> None:
        self._stop.set()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=self._read_timeout + 0.5)
        self._reader = None
        if self._serial is not None:
            try:
                self._serial.close()
            except (serial.SerialException, OSError) as e:
                logger.warning("Error closing serial port %s: %s", self.port, e)
            self._serial = None
            logger.info("Serial port %s closed", self.port)

    def read_item(self, ser: Any) -> Any | None:
        """Read one item from the port; None when nothing complete arrived."""
        raise NotImplementedError

    def _reader_loop(self) -> None:
        ser = self._serial
        if ser is None:
            return
        while not self._stop.is_set():
            try:
                item = self.read_item(ser)
            except (serial.SerialException, OSError) as e:
                logger.error("Serial read error on %s: %s", self.port, e)
                break
            if item is None:
                continue
            self.items_read += 1
            try:
                self._handler(item)
            except Exception as e:
                logger.error("Error handling serial data from %s: %s", self.port, e, exc_info=True)
        logger.debug("%s reader stopped", self.name)


class SerialLineSource(SerialSource):
    """Hands stripped, non-empty text lines to ``line_handler``."""

    def __init__(
        self,
        port: str,
        baud_rate: int,
        line_handler: Callable[[str], object],
        *,
        read_timeout: float = 1.0,
        name: str = "SerialLineSource",
    ) -> None:
        super().__init__(port, baud_rate, line_handler, read_timeout=read_timeout, name=name)

    def read_item(self, ser: Any) -> str | None:
        raw = ser.readline()
        if not raw:
            return None
        line = raw.decode("utf-8", errors="ignore").strip()
        return line or None


class SerialFrameSource(SerialSource):
    """
    Hands fixed-length binary frames to ``frame_handler``.

    With a ``header`` byte set, a chunk that does not start with it is
    realigned on the next header found in it; the bytes before it are dropped.
    """

    def __init__(
        self,
        port: str,
        baud_rate: int,
        frame_handler: Callable[[bytes], object],
        *,
        frame_length: int,
        header: bytes | None = None,
        read_timeout: float = 1.0,
        name: str = "SerialFrameSource",
    ) -> None:
        if frame_length <= 0:
            raise ValueError("frame_length must be positive")
        if header is not None and len(header) != 1:
            raise ValueError("header must be a single byte")
        super().__init__(port, baud_rate, frame_handler, read_timeout=read_timeout, name=name)
        self.frame_length = frame_length
        self.header = header
        self.bytes_discarded = 0

    def read_item(self, ser: Any) -> bytes | None:
        chunk = ser.read(self.frame_length)
        if len(chunk) < self.frame_length:
            # Timed out mid-frame
            self.bytes_discarded += len(chunk)
            return None
        if self.header is None or chunk[:1] == self.header:
            return chunk

        offset = chunk.find(self.header)
        if offset == -1:
            self.bytes_discarded += len(chunk)
            return None
        self.bytes_discarded += offset
        chunk = chunk[offset:] + ser.read(offset)
        if len(chunk) < self.frame_length:
            self.bytes_discarded += len(chunk)
            return None
        return chunk
