"""Device layer: one SerialDevice interface, one variant per native I/O model.

SerialPort only ever talks to a SerialDevice. The variants differ in how
they validate line settings, how they claim the port, and how they wait for
input; pyserial does the native configuration for both.
"""

import abc
import contextlib
import errno
import logging
import os
import serial

from ok_serialio import _exceptions
from ok_serialio._options import SerialOptions

log = logging.getLogger("ok_serialio.device")

_PARITY = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}

_STOP_BITS = {
    1: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2: serial.STOPBITS_TWO,
}

_NOT_FOUND_ERRNOS = (errno.ENOENT, errno.ENODEV, errno.ENXIO)
_DENIED_ERRNOS = (errno.EACCES, errno.EPERM)


class SerialDevice(abc.ABC):
    """An open, configured serial device (owned by exactly one SerialPort)"""

    name: str

    @abc.abstractmethod
    def read(self, size: int) -> bytes:
        """Returns up to 'size' queued bytes without blocking (maybe b"")"""

    @abc.abstractmethod
    def wait_readable(
        self, timeout: float | int, poll_interval: float | int
    ) -> None:
        """Returns when input may be queued or about 'timeout' has passed"""

    @abc.abstractmethod
    def write(self, data: bytes) -> int:
        """Issues one OS write and returns the count it reports"""

    @abc.abstractmethod
    def in_waiting(self) -> int: ...

    @abc.abstractmethod
    def reset_input(self) -> None: ...

    @abc.abstractmethod
    def set_dtr(self, state: bool) -> None: ...

    @abc.abstractmethod
    def set_rts(self, state: bool) -> None: ...

    @abc.abstractmethod
    def get_cts(self) -> bool: ...

    @abc.abstractmethod
    def get_dsr(self) -> bool: ...

    @abc.abstractmethod
    def get_dcd(self) -> bool: ...

    @abc.abstractmethod
    def get_ri(self) -> bool: ...

    @abc.abstractmethod
    def close(self) -> None:
        """Releases the device; must not raise"""


class PyserialDevice(SerialDevice):
    """Shared SerialDevice behavior over a non-blocking serial.Serial"""

    def __init__(self, port: str, opts: SerialOptions):
        self.name = port
        self.check_options(port, opts)
        with contextlib.ExitStack() as cleanup:
            self._pyserial = self._claim(cleanup, port, opts)
            self._cleanup = cleanup.pop_all()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def check_options(self, port: str, opts: SerialOptions) -> None:
        """Raises SerialOpenUnsupported for settings this platform can't do"""

        if opts.data_bits == 16:
            message = "16 data bits not supported"
            raise _exceptions.SerialOpenUnsupported(message, port)

    def _claim(
        self, cleanup: contextlib.ExitStack, port: str, opts: SerialOptions
    ) -> serial.Serial:
        return cleanup.enter_context(self._open_pyserial(port, opts))

    def _open_pyserial(self, port: str, opts: SerialOptions) -> serial.Serial:
        log.debug("Opening %s (%s)", port, opts)
        try:
            return serial.Serial(
                port=port,
                baudrate=opts.baud,
                bytesize=opts.data_bits,
                parity=_PARITY[opts.parity],
                stopbits=_STOP_BITS[opts.stop_bits],
                timeout=0,
                write_timeout=opts.write_timeout,
            )
        except ValueError as ex:
            message = f"Serial settings rejected ({ex})"
            raise _exceptions.SerialOpenUnsupported(message, port) from ex
        except OSError as ex:
            raise classify_open_error(ex, port) from ex

    def read(self, size: int) -> bytes:
        return self._pyserial.read(size)

    def write(self, data: bytes) -> int:
        # On Windows this is a single WriteFile; PosixDevice overrides it
        # because pyserial loops over os.write there
        return self._pyserial.write(data) or 0

    def in_waiting(self) -> int:
        return self._pyserial.in_waiting

    def reset_input(self) -> None:
        self._pyserial.reset_input_buffer()

    def set_dtr(self, state: bool) -> None:
        self._pyserial.dtr = state

    def set_rts(self, state: bool) -> None:
        self._pyserial.rts = state

    def get_cts(self) -> bool:
        return self._pyserial.cts

    def get_dsr(self) -> bool:
        return self._pyserial.dsr

    def get_dcd(self) -> bool:
        return self._pyserial.cd

    def get_ri(self) -> bool:
        return self._pyserial.ri

    def close(self) -> None:
        try:
            self._cleanup.close()
            log.debug("Closed %s", self.name)
        except OSError:
            log.warning("Can't cleanly close %s", self.name, exc_info=True)


def classify_open_error(
    ex: OSError, port: str
) -> _exceptions.SerialOpenException:
    """Maps an OS-level open failure to the matching SerialOpenException"""

    # pyserial keeps errno on POSIX; on Windows only the WinError text survives
    text = str(ex)
    if ex.errno in _NOT_FOUND_ERRNOS or "FileNotFoundError" in text:
        return _exceptions.SerialOpenNotFound("Serial port not found", port)
    elif ex.errno in _DENIED_ERRNOS:
        return _exceptions.SerialOpenDenied("Serial port access denied", port)
    elif ex.errno == errno.EBUSY or "PermissionError" in text:
        return _exceptions.SerialOpenBusy("Serial port busy", port)
    message = f"Serial port open error ({ex})"
    return _exceptions.SerialOpenException(message, port)


def open_device(port: str, opts: SerialOptions) -> SerialDevice:
    """Opens 'port' with the SerialDevice variant for this platform"""

    if os.name == "posix":
        from ok_serialio import _posix

        return _posix.PosixDevice(port, opts)

    from ok_serialio import _polling

    return _polling.PollingDevice(port, opts)
