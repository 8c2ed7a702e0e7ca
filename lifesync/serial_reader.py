"""
Accelerometer input: the collaborator interface and a serial port reader
for a wrist or pocket board streaming "x,y,z" lines
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import serial

from lifesync.config import ACCELEROMETER_INTERVAL_SECONDS, BAUD_RATE, SERIAL_PORT
from lifesync.models import AccelerometerSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[AccelerometerSample], None]


class Accelerometer(ABC):
    """Source of accelerometer samples, in g."""

    @abstractmethod
    async def is_available(self) -> bool:
        ...

    @abstractmethod
    def subscribe(self, callback: SampleCallback) -> Callable[[], None]:
        """Receive every sample. Returns an unsubscribe function."""

    def set_update_interval(self, seconds: float) -> None:
        return None


class SerialAccelerometer(Accelerometer):
    """
    Reads accelerometer samples from a serial port.
    Runs in a separate thread and hands samples to the event loop.
    """

    def __init__(self, port: str = SERIAL_PORT, baud_rate: int = BAUD_RATE,
                 clock: Callable[[], float] = time.time):
        self.port = port
        self.baud_rate = baud_rate
        self.clock = clock
        self.update_interval = ACCELEROMETER_INTERVAL_SECONDS
        self.serial_connection: Optional[serial.Serial] = None
        self.is_running = False
        self.read_thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscribers: List[SampleCallback] = []

    def connect(self) -> bool:
        """
        Establish connection to the serial port.
        Returns True if successful, False otherwise.
        """
        try:
            self.serial_connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=1
            )
            logger.info(f"[Accelerometer] Connected to {self.port} at {self.baud_rate} baud")
            # Discard anything buffered before we connected
            self.serial_connection.reset_input_buffer()
            return True
        except serial.SerialException as e:
            logger.warning(f"[Accelerometer] Error connecting to {self.port}: {e}")
            return False

    def disconnect(self):
        if self.serial_connection and self.serial_connection.is_open:
            self.serial_connection.close()
            logger.info(f"[Accelerometer] Disconnected from {self.port}")

    async def is_available(self) -> bool:
        if self.serial_connection and self.serial_connection.is_open:
            return True
        return await asyncio.get_running_loop().run_in_executor(None, self.connect)

    def set_update_interval(self, seconds: float) -> None:
        self.update_interval = seconds

    def parse_line(self, line: str) -> Optional[AccelerometerSample]:
        """
        Parse one "x,y,z" line. A leading timestamp column in seconds is optional.
        Example: 0.012,-0.034,0.998
        """
        parts = line.strip().split(",")
        try:
            if len(parts) == 3:
                x, y, z = (float(p) for p in parts)
                timestamp = self.clock()
            elif len(parts) == 4:
                timestamp, x, y, z = (float(p) for p in parts)
            else:
                return None
        except ValueError:
            # Header or debug output from the board
            return None
        return AccelerometerSample(timestamp=timestamp, x=x, y=y, z=z)

    def subscribe(self, callback: SampleCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        self._loop = asyncio.get_running_loop()
        self.start_reading()

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
            if not self._subscribers:
                self.stop_reading()

        return unsubscribe

    def _dispatch(self, sample: AccelerometerSample):
        for callback in list(self._subscribers):
            try:
                callback(sample)
            except Exception:
                logger.exception("[Accelerometer] Subscriber failed")

    def _read_loop(self):
        """Main reading loop - runs in separate thread"""
        logger.debug("[Accelerometer] Reading started")
        last_sent = 0.0
        while self.is_running:
            try:
                if self.serial_connection and self.serial_connection.in_waiting > 0:
                    line = self.serial_connection.readline().decode("utf-8", errors="ignore")
                    sample = self.parse_line(line)
                    if sample is None or sample.timestamp - last_sent < self.update_interval:
                        continue
                    last_sent = sample.timestamp
                    if self._loop is not None and not self._loop.is_closed():
                        self._loop.call_soon_threadsafe(self._dispatch, sample)
                else:
                    time.sleep(0.01)
            except serial.SerialException as e:
                logger.error(f"[Accelerometer] Error reading from serial: {e}")
                time.sleep(0.5)
        logger.debug("[Accelerometer] Reading stopped")

    def start_reading(self):
        if self.is_running:
            return
        if not self.serial_connection or not self.serial_connection.is_open:
            if not self.connect():
                logger.warning("[Accelerometer] Failed to connect. Cannot start reading.")
                return
        self.is_running = True
        self.read_thread = threading.Thread(target=self._read_loop, daemon=True)
        self.read_thread.start()

    def stop_reading(self):
        self.is_running = False
        if self.read_thread:
            self.read_thread.join(timeout=2)
            self.read_thread = None

    def close(self):
        self.stop_reading()
        self.disconnect()
