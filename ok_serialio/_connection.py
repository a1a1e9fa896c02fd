import contextlib
import dataclasses
import logging
from typing import Annotated, Literal

import msgspec
import pydantic

from ok_serialio import _device
from ok_serialio import _exceptions
from ok_serialio import _timeout_math
from ok_serialio._options import SerialOptions

log = logging.getLogger("ok_serialio.connection")
data_log = logging.getLogger(log.name + ".data")

ReadStatus = Literal["terminated", "full", "timeout"]

# "complete" is for reads that return plain bytes and never reaches callers
_FillStatus = ReadStatus | Literal["complete"]

_Byte = Annotated[int, pydantic.Field(ge=0, le=255)]

# Longest single wait handed to the device, so huge deadlines stay legal
_WAIT_SLICE = 1.0


class ReadResult(msgspec.Struct, frozen=True):
    """Bytes from one read call and why the read stopped"""

    data: bytes
    status: ReadStatus


class SerialSignals(msgspec.Struct, frozen=True):
    """Modem lines: dtr/rts as last set by us, the rest as read from hardware"""

    dtr: bool
    rts: bool
    cts: bool
    dsr: bool
    dcd: bool
    ri: bool


@dataclasses.dataclass
class _OutputLines:
    dtr: bool = True
    rts: bool = True


class SerialPort(contextlib.AbstractContextManager):
    """A serial port that is either Closed or Open.

    Every I/O and modem-line call needs the port to be Open and raises
    SerialNotOpen otherwise. Reads block the calling thread until they
    finish or their timeout (in seconds) runs out: None waits forever,
    0 makes a single non-blocking attempt. Not thread-safe; use one
    SerialPort from one thread at a time.
    """

    @pydantic.validate_call
    def __init__(self, port: str, opts: SerialOptions | int = SerialOptions()):
        if isinstance(opts, int):
            opts = SerialOptions(baud=opts)

        self._port = port
        self._opts = opts
        self._device: _device.SerialDevice | None = None
        self._outputs = _OutputLines()

    def __del__(self) -> None:
        if getattr(self, "_device", None):
            self.close()

    def __enter__(self) -> "SerialPort":
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self._device else "closed"
        return f"SerialPort({self._port!r}, {state})"

    @property
    def port_name(self) -> str:
        return self._port

    @property
    def options(self) -> SerialOptions:
        return self._opts

    @property
    def is_open(self) -> bool:
        return self._device is not None

    #
    # Lifecycle
    #

    def open(self) -> None:
        if self._device:
            log.debug("%s already open", self._port)
            return

        self._device = _device.open_device(self._port, self._opts)
        self._outputs = _OutputLines()
        log.debug("Opened %s (%r)", self._port, self._device)

    def close(self) -> None:
        device, self._device = self._device, None
        if device:
            device.close()
            log.debug("Closed %s", self._port)

    def _require_open(self) -> _device.SerialDevice:
        if not self._device:
            raise _exceptions.SerialNotOpen("Serial port not open", self._port)
        return self._device

    #
    # Reading
    #

    @pydantic.validate_call
    def read_char(
        self,
        timeout: float | int | None = None,
        poll_interval: float | int | None = None,
    ) -> bytes:
        out = bytearray()
        self._accumulate(out, 1, None, timeout, poll_interval)
        return bytes(out)

    @pydantic.validate_call
    def read_string(
        self,
        final: bytes | int = b"\n",
        max_bytes: Annotated[int, pydantic.Field(ge=1)] = 256,
        timeout: float | int | None = None,
        poll_interval: float | int | None = None,
    ) -> ReadResult:
        """Reads until 'final' (consumed, not returned), until max_bytes - 1
        bytes are collected ("full"), or until the timeout ("timeout")."""

        if isinstance(final, int):
            final = bytes([final])
        if len(final) != 1:
            raise ValueError(f"Terminator must be one byte, got {final!r}")

        out = bytearray()
        limit = max_bytes - 1
        status = self._accumulate(out, limit, final, timeout, poll_interval)
        assert status != "complete"
        return ReadResult(data=bytes(out), status=status)

    @pydantic.validate_call
    def read_bytes(
        self,
        max_bytes: Annotated[int, pydantic.Field(ge=0)],
        timeout: float | int | None = None,
        poll_interval: float | int | None = None,
    ) -> bytes:
        out = bytearray()
        self._accumulate(out, max_bytes, None, timeout, poll_interval)
        return bytes(out)

    def read_into(
        self,
        buffer: bytearray | memoryview,
        max_bytes: int | None = None,
        timeout: float | int | None = None,
        poll_interval: float | int | None = None,
    ) -> int:
        """Fills the start of 'buffer' and returns the byte count (short on
        timeout, which is not an error)."""

        limit = len(buffer)
        if max_bytes is not None:
            limit = min(max_bytes, limit)
        out = bytearray()
        self._accumulate(out, limit, None, timeout, poll_interval)
        buffer[: len(out)] = out
        return len(out)

    def available(self) -> int:
        device = self._require_open()
        try:
            return device.in_waiting()
        except OSError as ex:
            message = "Serial input queue query error"
            raise _exceptions.SerialIoException(message, self._port) from ex

    def flush_receiver(self) -> None:
        device = self._require_open()
        try:
            device.reset_input()
            data_log.debug("%s: Flushed input", self._port)
        except OSError as ex:
            message = "Serial input flush error"
            raise _exceptions.SerialIoException(message, self._port) from ex

    def _accumulate(
        self,
        out: bytearray,
        limit: int,
        final: bytes | None,
        timeout: float | int | None,
        poll_interval: float | int | None,
    ) -> _FillStatus:
        device = self._require_open()
        timer = _timeout_math.TimeoutTimer(timeout)
        poll = poll_interval
        if poll is None:
            poll = self._opts.poll_interval

        # A zero timeout drains whatever is queued; a real deadline also cuts
        # off input that keeps arriving
        cutoff = timeout is not None and timeout > 0

        # With a terminator, take one byte at a time so nothing past it is
        # pulled out of the OS queue
        status: _FillStatus = "full" if final else "complete"
        try:
            while len(out) < limit:
                chunk = device.read(1 if final else limit - len(out))
                if chunk:
                    if final and chunk == final:
                        status = "terminated"
                        break
                    out.extend(chunk)
                    if cutoff and len(out) < limit and timer.expired():
                        status = "timeout"
                        break
                    continue

                wait = timer.remaining()
                if wait <= 0:
                    status = "timeout"
                    break
                device.wait_readable(min(wait, _WAIT_SLICE), poll)
        except OSError as ex:
            message = "Serial read error"
            raise _exceptions.SerialIoException(message, self._port) from ex

        data_log.debug(
            "%s: Read %db (%s) in %dms",
            self._port,
            len(out),
            status,
            timer.elapsed_ms(),
        )
        return status

    #
    # Writing
    #

    @pydantic.validate_call
    def write_char(self, char: _Byte | bytes) -> None:
        if isinstance(char, int):
            char = bytes([char])
        if len(char) != 1:
            raise ValueError(f"Expected one byte, got {char!r}")
        self._write(char)

    @pydantic.validate_call
    def write_string(self, text: str) -> None:
        self._write(text.encode(self._opts.encoding))

    @pydantic.validate_call
    def write_bytes(self, data: bytes) -> None:
        self._write(data)

    def _write(self, data: bytes) -> None:
        device = self._require_open()
        try:
            written = device.write(data)
        except OSError as ex:
            message = "Serial write error"
            raise _exceptions.SerialIoException(message, self._port) from ex

        data_log.debug("%s: Wrote %d/%db", self._port, written, len(data))
        if written != len(data):
            message = f"Short write ({written}/{len(data)}b)"
            raise _exceptions.SerialIoException(message, self._port)

    #
    # Modem control lines
    #

    @pydantic.validate_call
    def set_dtr(self, state: bool) -> None:
        self._set_line("DTR", state)
        self._outputs.dtr = state

    @pydantic.validate_call
    def set_rts(self, state: bool) -> None:
        self._set_line("RTS", state)
        self._outputs.rts = state

    def get_dtr(self) -> bool:
        self._require_open()
        return self._outputs.dtr

    def get_rts(self) -> bool:
        self._require_open()
        return self._outputs.rts

    def get_cts(self) -> bool:
        return self._get_line("CTS")

    def get_dsr(self) -> bool:
        return self._get_line("DSR")

    def get_dcd(self) -> bool:
        return self._get_line("DCD")

    def get_ri(self) -> bool:
        return self._get_line("RI")

    def signals(self) -> SerialSignals:
        return SerialSignals(
            dtr=self.get_dtr(),
            rts=self.get_rts(),
            cts=self.get_cts(),
            dsr=self.get_dsr(),
            dcd=self.get_dcd(),
            ri=self.get_ri(),
        )

    def _set_line(self, line: Literal["DTR", "RTS"], state: bool) -> None:
        device = self._require_open()
        setter = device.set_dtr if line == "DTR" else device.set_rts
        try:
            setter(state)
        except OSError as ex:
            message = f"Can't set {line}"
            raise _exceptions.SerialIoException(message, self._port) from ex
        log.debug("%s: %s=%d", self._port, line, state)

    def _get_line(self, line: Literal["CTS", "DSR", "DCD", "RI"]) -> bool:
        device = self._require_open()
        getter = {
            "CTS": device.get_cts,
            "DSR": device.get_dsr,
            "DCD": device.get_dcd,
            "RI": device.get_ri,
        }[line]
        try:
            return getter()
        except OSError as ex:
            message = f"Can't read {line}"
            raise _exceptions.SerialIoException(message, self._port) from ex
