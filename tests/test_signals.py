"""Unit tests for SerialPort control lines, state checks and error paths,
using an in-memory device whose output lines can't be read back."""

import time
import pytest

import ok_serialio
from ok_serialio import SerialPort, SerialSignals


#
# Output lines (cached)
#


def test_dtr_rts_default_asserted(fake_device):
    with SerialPort(fake_device.name) as port:
        assert port.get_dtr() is True
        assert port.get_rts() is True


def test_set_dtr_is_cached(fake_device):
    with SerialPort(fake_device.name) as port:
        port.set_dtr(False)
        assert port.get_dtr() is False
        port.set_dtr(True)
        assert port.get_dtr() is True
        assert fake_device.line_writes == [("dtr", False), ("dtr", True)]


def test_set_rts_is_cached(fake_device):
    with SerialPort(fake_device.name) as port:
        port.set_rts(False)
        assert port.get_rts() is False
        assert port.get_dtr() is True
        assert fake_device.line_writes == [("rts", False)]


def test_failed_set_keeps_cache(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.fail.add("dtr")
        with pytest.raises(ok_serialio.SerialIoException):
            port.set_dtr(False)
        assert port.get_dtr() is True


def test_cache_resets_on_reopen(fake_device):
    port = SerialPort(fake_device.name)
    port.open()
    port.set_rts(False)
    port.close()
    port.open()
    assert port.get_rts() is True
    port.close()


#
# Input lines (live)
#


@pytest.mark.parametrize("line", ["cts", "dsr", "dcd", "ri"])
def test_input_lines_read_through(fake_device, line):
    with SerialPort(fake_device.name) as port:
        getter = getattr(port, f"get_{line}")
        assert getter() is False
        fake_device.lines[line] = True
        assert getter() is True
        fake_device.lines[line] = False
        assert getter() is False


@pytest.mark.parametrize("line", ["cts", "dsr", "dcd", "ri"])
def test_input_line_failure(fake_device, line):
    with SerialPort(fake_device.name) as port:
        fake_device.fail.add(line)
        with pytest.raises(ok_serialio.SerialIoException):
            getattr(port, f"get_{line}")()


def test_signals_snapshot(fake_device):
    with SerialPort(fake_device.name) as port:
        port.set_dtr(False)
        fake_device.lines.update(cts=True, ri=True)
        assert port.signals() == SerialSignals(
            dtr=False, rts=True, cts=True, dsr=False, dcd=False, ri=True
        )


#
# Closed state
#

CLOSED_OPS = {
    "read_char": lambda p: p.read_char(timeout=0),
    "read_string": lambda p: p.read_string(b"\n", timeout=0),
    "read_bytes": lambda p: p.read_bytes(4, timeout=0),
    "read_into": lambda p: p.read_into(bytearray(4), timeout=0),
    "available": lambda p: p.available(),
    "flush_receiver": lambda p: p.flush_receiver(),
    "write_char": lambda p: p.write_char(b"x"),
    "write_string": lambda p: p.write_string("x"),
    "write_bytes": lambda p: p.write_bytes(b"x"),
    "set_dtr": lambda p: p.set_dtr(True),
    "set_rts": lambda p: p.set_rts(True),
    "get_dtr": lambda p: p.get_dtr(),
    "get_rts": lambda p: p.get_rts(),
    "get_cts": lambda p: p.get_cts(),
    "get_dsr": lambda p: p.get_dsr(),
    "get_dcd": lambda p: p.get_dcd(),
    "get_ri": lambda p: p.get_ri(),
    "signals": lambda p: p.signals(),
}


@pytest.mark.parametrize("op", CLOSED_OPS.values(), ids=CLOSED_OPS.keys())
def test_closed_port_raises_not_open(fake_device, op):
    fake_device.incoming.extend(b"data")
    port = SerialPort(fake_device.name)
    with pytest.raises(ok_serialio.SerialNotOpen):
        op(port)

    port.open()
    port.close()
    with pytest.raises(ok_serialio.SerialNotOpen):
        op(port)

    assert fake_device.written == b""
    assert fake_device.line_writes == []
    assert bytes(fake_device.incoming) == b"data"


def test_not_open_is_io_exception():
    assert issubclass(ok_serialio.SerialNotOpen, ok_serialio.SerialIoException)
    assert issubclass(ok_serialio.SerialIoException, OSError)


def test_close_releases_device(fake_device):
    port = SerialPort(fake_device.name)
    port.open()
    port.close()
    assert fake_device.closed
    port.close()


#
# I/O errors
#


def test_short_write_is_error(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.short_write = 1
        with pytest.raises(ok_serialio.SerialIoException):
            port.write_bytes(b"abc")
        assert fake_device.written == b"ab"


def test_write_failure(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.fail.add("write")
        with pytest.raises(ok_serialio.SerialIoException) as exc_info:
            port.write_string("abc")
        assert isinstance(exc_info.value.__cause__, OSError)


def test_read_failure(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.fail.add("read")
        with pytest.raises(ok_serialio.SerialIoException):
            port.read_char(timeout=1)


@pytest.mark.parametrize("op", ["in_waiting", "reset_input"])
def test_queue_op_failure(fake_device, op):
    with SerialPort(fake_device.name) as port:
        fake_device.fail.add(op)
        with pytest.raises(ok_serialio.SerialIoException):
            port.available() if op == "in_waiting" else port.flush_receiver()


#
# Read engine against the fake
#


def test_read_waits_are_bounded_by_timeout(fake_device):
    with SerialPort(fake_device.name) as port:
        assert port.read_char(timeout=0.05) == b""
        assert fake_device.waits
        assert all(0 < w <= 0.05 for w in fake_device.waits)


def test_read_string_stops_at_terminator(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.incoming.extend(b"abc\ndef")
        result = port.read_string(b"\n", max_bytes=10, timeout=0)
        assert result.data == b"abc"
        assert result.status == "terminated"
        assert bytes(fake_device.incoming) == b"def"


def test_read_string_max_bytes_one_is_full(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.incoming.extend(b"abc")
        result = port.read_string(b"\n", max_bytes=1, timeout=0)
        assert result == ok_serialio.ReadResult(data=b"", status="full")
        assert port.available() == 3


def test_read_bytes_full_count(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.incoming.extend(b"0123456789")
        assert port.read_bytes(4, timeout=0) == b"0123"
        assert port.read_bytes(0, timeout=0) == b""
        assert port.available() == 6


def test_streaming_input_stops_at_deadline(fake_device):
    def trickle(size):
        time.sleep(0.001)
        return b"x"

    fake_device.read = trickle
    with SerialPort(fake_device.name) as port:
        start = time.monotonic()
        data = port.read_bytes(2000, timeout=0.2)
        assert 0.2 <= time.monotonic() - start < 1.0
        assert 0 < len(data) < 2000

        start = time.monotonic()
        result = port.read_string(b"\n", max_bytes=5000, timeout=0.1)
        assert 0.1 <= time.monotonic() - start < 1.0
        assert result.status == "timeout"
        assert 0 < len(result.data) < 4999
        assert result.data == b"x" * len(result.data)


def test_zero_timeout_drains_queue_without_waiting(fake_device):
    with SerialPort(fake_device.name) as port:
        fake_device.incoming.extend(b"abc")
        result = port.read_string(b"\n", max_bytes=10, timeout=0)
        assert result == ok_serialio.ReadResult(data=b"abc", status="timeout")
        assert not fake_device.waits
