import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from growhub.domain.exceptions import PublishFailure
from growhub.hardware.sensors.adapters import (
    Bme688Adapter,
    EnvironmentFrameAdapter,
    WaterLevelAdapter,
    extract_frame,
    water_level_percent,
)
from growhub.hardware.sensors.serial_source import SerialFrameSource, SerialLineSource


@pytest.mark.parametrize(
    "distance, expected",
    [(0, 100.0), (125, 50.0), (250, 0.0), (400, 0.0), (87.3, 65.08)],
)
def test_water_level_percent(distance, expected):
    assert water_level_percent(distance) == expected


def test_extract_frame():
    assert extract_frame('SENSOR_START{"lightIntensity": 10}SENSOR_END') == '{"lightIntensity": 10}'
    assert extract_frame('noise SENSOR_START{}SENSOR_END trailing') == "{}"
    assert extract_frame('SENSOR_START{"a": 1}') is None
    assert extract_frame("booting...") is None


def test_environment_frame_published(recording_bus):
    adapter = EnvironmentFrameAdapter(recording_bus)

    assert adapter.handle_line('SENSOR_START{"lightIntensity": 321, "temperature": 22.4}SENSOR_END')

    assert recording_bus.published == [("arduinoEnvironment/state", {"lightIntensity": 321, "temperature": 22.4})]
    assert adapter.frames_published == 1


def test_environment_bad_frames_dropped(recording_bus):
    adapter = EnvironmentFrameAdapter(recording_bus)

    assert not adapter.handle_line("SENSOR_START{broken SENSOR_END")
    assert not adapter.handle_line("SENSOR_START[1, 2]SENSOR_END")
    assert not adapter.handle_line("DHT init ok")

    assert recording_bus.published == []
    assert adapter.frames_dropped == 2


def test_environment_publish_failure_logged(recording_bus):
    recording_bus.fail_topics.add("arduinoEnvironment/state")
    adapter = EnvironmentFrameAdapter(recording_bus)

    assert not adapter.handle_line('SENSOR_START{"humidity": 40}SENSOR_END')
    assert adapter.frames_published == 0


def test_water_level_published_only_when_fresh(recording_bus):
    adapter = WaterLevelAdapter(recording_bus)

    assert not adapter.publish_latest()
    adapter.record_distance(125)
    assert adapter.publish_latest()
    assert not adapter.publish_latest()

    assert recording_bus.published == [("waterLevelSensor/state", {"waterLevel": 50.0})]


def test_water_level_decodes_ultrasonic_frame(recording_bus):
    adapter = WaterLevelAdapter(recording_bus)

    # 0x007D = 125 mm of a 250 mm tank
    assert adapter.handle_frame(b"\xff\x00\x7d\x7c")
    assert adapter.publish_latest()

    assert recording_bus.published == [("waterLevelSensor/state", {"waterLevel": 50.0})]


def test_water_level_latest_frame_wins(recording_bus):
    adapter = WaterLevelAdapter(recording_bus)

    assert adapter.handle_frame(bytes([0xFF, 0x00, 0xC8, 0xC7]))
    assert adapter.handle_frame(bytes([0xFF, 0x00, 0x32, 0x31]))
    assert not adapter.handle_frame(bytes([0x12, 0x00, 0x64, 0x76]))
    adapter.publish_latest()

    assert recording_bus.published == [("waterLevelSensor/state", {"waterLevel": 80.0})]


def test_water_level_publish_failure_drops_reading():
    publisher = MagicMock()
    publisher.publish.side_effect = PublishFailure("broker gone")
    adapter = WaterLevelAdapter(publisher)
    adapter.record_distance(100)

    assert not adapter.publish_latest()
    # Not retried: the next fresh distance replaces it
    assert not adapter.publish_latest()
    assert publisher.publish.call_count == 1


def test_water_level_timer_publishes(recording_bus):
    adapter = WaterLevelAdapter(recording_bus, interval_seconds=0.02)
    adapter.record_distance(0)

    adapter.start()
    try:
        deadline = time.monotonic() + 2
        while not recording_bus.published and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        adapter.stop()

    assert recording_bus.published == [("waterLevelSensor/state", {"waterLevel": 100.0})]


def test_bme688_reading_mapped_to_telemetry_keys(recording_bus):
    adapter = Bme688Adapter(recording_bus)

    assert adapter.publish_reading({"temperature": 23.1, "pressure": 1009.2, "humidity": 48.0, "gas_resistance": 120000})

    topic, payload = recording_bus.published[0]
    assert topic == "bme688/state"
    assert payload == {"temperature": 23.1, "pressure": 1009.2, "humidity": 48.0, "gasResistance": 120000}


def test_bme688_empty_reading_skipped(recording_bus):
    assert not Bme688Adapter(recording_bus).publish_reading({"altitude": 12})
    assert recording_bus.published == []


def test_adapter_feeds_state_through_bus(loopback_bus, hub_repo, relay_map):
    from growhub.services.state_sync import StateSyncService

    StateSyncService(hub_repo, relay_map).attach(loopback_bus)

    EnvironmentFrameAdapter(loopback_bus).handle_line('SENSOR_START{"lightIntensity": 275}SENSOR_END')
    Bme688Adapter(loopback_bus).publish_reading({"gas_resistance": 9000.0})

    snapshot = hub_repo.read_snapshot()
    assert snapshot.light_intensity == 275
    assert snapshot.gas_resistance == 9000.0


class DummySerial:
    def __init__(self, lines):
        self._lines = list(lines)
        self.is_open = True
        self.closed = threading.Event()

    def readline(self):
        if self._lines:
            return self._lines.pop(0)
        time.sleep(0.01)
        return b""

    def close(self):
        self.is_open = False
        self.closed.set()


def test_serial_source_feeds_lines():
    dummy = DummySerial([b'SENSOR_START{"humidity": 40}SENSOR_END\r\n', b"\r\n", b"ready\n"])
    received = []
    done = threading.Event()

    def handler(line):
        received.append(line)
        if len(received) == 2:
            done.set()

    with patch("growhub.hardware.sensors.serial_source.serial.Serial", return_value=dummy) as serial_cls:
        source = SerialLineSource("/dev/ttyACM0", 9600, handler, read_timeout=0.05)
        assert source.start()
        assert done.wait(timeout=2)
        source.stop()

    serial_cls.assert_called_once_with("/dev/ttyACM0", 9600, timeout=0.05)
    assert received == ['SENSOR_START{"humidity": 40}SENSOR_END', "ready"]
    assert dummy.closed.is_set()


def test_serial_source_stays_idle_when_port_missing():
    import serial

    with patch(
        "growhub.hardware.sensors.serial_source.serial.Serial",
        side_effect=serial.SerialException("could not open port"),
    ):
        source = SerialLineSource("/dev/ttyUSB9", 9600, MagicMock())
        assert source.start() is False

    assert not source.is_open
    source.stop()


def test_serial_handler_errors_do_not_kill_reader():
    dummy = DummySerial([b"first\n", b"second\n"])
    received = []
    done = threading.Event()

    def handler(line):
        if line == "first":
            raise ValueError("bad line")
        received.append(line)
        done.set()

    with patch("growhub.hardware.sensors.serial_source.serial.Serial", return_value=dummy):
        source = SerialLineSource("/dev/ttyACM0", 9600, handler, read_timeout=0.05)
        source.start()
        assert done.wait(timeout=2)
        source.stop()

    assert received == ["second"]


class DummyByteSerial:
    def __init__(self, data):
        self._data = bytearray(data)
        self.is_open = True

    def read(self, size):
        if not self._data:
            time.sleep(0.01)
            return b""
        chunk = bytes(self._data[:size])
        del self._data[:size]
        return chunk

    def close(self):
        self.is_open = False


def test_frame_source_realigns_on_header_byte(recording_bus):
    # Stream joined mid-frame: one trailing checksum byte before the first header
    dummy = DummyByteSerial(b"\x7c" + b"\xff\x00\x7d\x7c" + b"\xff\x00\x32\x31")
    adapter = WaterLevelAdapter(recording_bus)
    frames = []
    done = threading.Event()

    def handler(frame):
        frames.append(frame)
        adapter.handle_frame(frame)
        if len(frames) == 2:
            done.set()

    with patch("growhub.hardware.sensors.serial_source.serial.Serial", return_value=dummy):
        source = SerialFrameSource("/dev/ttyS0", 9600, handler, frame_length=4, header=b"\xff", read_timeout=0.05)
        assert source.start()
        assert done.wait(timeout=2)
        source.stop()

    assert frames == [b"\xff\x00\x7d\x7c", b"\xff\x00\x32\x31"]
    assert source.bytes_discarded == 1
    adapter.publish_latest()
    assert recording_bus.published == [("waterLevelSensor/state", {"waterLevel": 80.0})]


def test_frame_source_rejects_multi_byte_header():
    with pytest.raises(ValueError):
        SerialFrameSource("/dev/ttyS0", 9600, MagicMock(), frame_length=4, header=b"\xff\xff")
