import collections
import contextlib
import io
import json
import ok_logging_setup
import os
import pty
import pytest
import typing

from ok_serialio import _device
from ok_serialio import _polling

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "ok_serialio=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        ctrl_fd, sim_fd = pty.openpty()
        path = os.ttyname(sim_fd)
        ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
        sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
        yield PseudoTtySerial(path=path, control=ctrl, simulated=sim)


@pytest.fixture(params=["posix", "polling"])
def device_variant(request, mocker):
    """Runs a test once per SerialDevice variant (both work on a pty)"""

    if request.param == "polling":
        mocker.patch.object(
            _device,
            "open_device",
            side_effect=lambda port, opts: _polling.PollingDevice(port, opts),
        )
    return request.param


class FakeDevice(_device.SerialDevice):
    """In-memory SerialDevice whose DTR/RTS can't be read back"""

    def __init__(self, name: str = "/dev/fake"):
        self.name = name
        self.incoming = collections.deque()
        self.written = bytearray()
        self.short_write = 0
        self.fail: set[str] = set()
        self.lines = {"cts": False, "dsr": False, "dcd": False, "ri": False}
        self.line_writes: list[tuple[str, bool]] = []
        self.waits: list[float] = []
        self.closed = False

    def _check(self, op: str) -> None:
        if op in self.fail:
            raise OSError(5, f"fake {op} failure")

    def read(self, size):
        self._check("read")
        out = bytearray()
        while self.incoming and len(out) < size:
            out.append(self.incoming.popleft())
        return bytes(out)

    def wait_readable(self, timeout, poll_interval):
        self.waits.append(timeout)

    def write(self, data):
        self._check("write")
        count = len(data) - self.short_write
        self.written.extend(data[:count])
        return count

    def in_waiting(self):
        self._check("in_waiting")
        return len(self.incoming)

    def reset_input(self):
        self._check("reset_input")
        self.incoming.clear()

    def set_dtr(self, state):
        self._check("dtr")
        self.line_writes.append(("dtr", state))

    def set_rts(self, state):
        self._check("rts")
        self.line_writes.append(("rts", state))

    def get_cts(self):
        self._check("cts")
        return self.lines["cts"]

    def get_dsr(self):
        self._check("dsr")
        return self.lines["dsr"]

    def get_dcd(self):
        self._check("dcd")
        return self.lines["dcd"]

    def get_ri(self):
        self._check("ri")
        return self.lines["ri"]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_device(mocker):
    device = FakeDevice()
    mocker.patch.object(_device, "open_device", return_value=device)
    return device


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("OK_SERIALIO_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict[str, str]]):
        path.write_text(json.dumps(ports))

    return set_ports
