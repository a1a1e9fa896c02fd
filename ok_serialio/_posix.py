"""SerialDevice for POSIX: termios rate set, port locking, select() waits.

pyserial calls termios directly, and termios.error is not an OSError, so
this variant converts it wherever pyserial touches termios.
"""

import contextlib
import errno
import logging
import os
import re
import select
import serial
import termios

from ok_serialio import _device
from ok_serialio import _exceptions
from ok_serialio import _locking
from ok_serialio._options import SerialOptions

log = logging.getLogger("ok_serialio.device")

# Rates with a termios B<rate> constant on this system (B0 means hang up)
BAUD_RATES = frozenset(
    int(name[1:])
    for name in dir(termios)
    if re.fullmatch(r"B[0-9]+", name) and name != "B0"
)


class PosixDevice(_device.PyserialDevice):
    def check_options(self, port: str, opts: SerialOptions) -> None:
        super().check_options(port, opts)
        if opts.baud not in BAUD_RATES:
            message = f"{opts.baud} baud not in termios rate set"
            raise _exceptions.SerialOpenUnsupported(message, port)
        if opts.stop_bits == 1.5:
            message = "1.5 stop bits not supported by termios"
            raise _exceptions.SerialOpenUnsupported(message, port)

    def _claim(
        self, cleanup: contextlib.ExitStack, port: str, opts: SerialOptions
    ) -> serial.Serial:
        cleanup.enter_context(_locking.using_lock_file(port, opts.sharing))
        pyserial = super()._claim(cleanup, port, opts)
        fd, sharing = pyserial.fileno(), opts.sharing
        cleanup.enter_context(_locking.using_fd_lock(port, fd, sharing))
        return pyserial

    def wait_readable(
        self, timeout: float | int, poll_interval: float | int
    ) -> None:
        # Readiness notification makes poll_interval moot here
        select.select([self._pyserial.fileno()], [], [], timeout)

    def _open_pyserial(self, port: str, opts: SerialOptions) -> serial.Serial:
        try:
            return super()._open_pyserial(port, opts)
        except termios.error as ex:
            code, text = _termios_error_args(ex)
            if code == errno.EINVAL:
                message = f"Serial settings rejected by driver ({text})"
                raise _exceptions.SerialOpenUnsupported(message, port) from ex
            oserror = OSError(code, text)
            raise _device.classify_open_error(oserror, port) from ex

    def write(self, data: bytes) -> int:
        if not data:
            return 0

        # The fd is non-blocking; wait for room (up to write_timeout), then
        # make exactly one write() and report what the driver took
        fd = self._pyserial.fileno()
        select.select([], [fd], [], self._pyserial.write_timeout)
        return os.write(fd, data)

    def reset_input(self) -> None:
        try:
            super().reset_input()
        except termios.error as ex:
            raise OSError(*_termios_error_args(ex)) from ex


def _termios_error_args(ex: termios.error) -> tuple[int | None, str]:
    if len(ex.args) >= 2:
        return ex.args[0], str(ex.args[1])
    return None, str(ex)
