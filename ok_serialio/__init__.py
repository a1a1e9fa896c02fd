"""
Serial port library (PySerial wrapper) with deadline-bounded reads,
explicit open/closed state, and cached modem control lines.
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from ok_serialio._connection import (
    ReadResult,
    ReadStatus,
    SerialPort,
    SerialSignals,
)

from ok_serialio._exceptions import (
    SerialException,
    SerialIoException,
    SerialNotOpen,
    SerialOpenBusy,
    SerialOpenDenied,
    SerialOpenException,
    SerialOpenNotFound,
    SerialOpenUnsupported,
    SerialScanException,
)

from ok_serialio._options import (
    DataBits,
    Parity,
    SerialOptions,
    SharingType,
    StopBits,
)

from ok_serialio._scanning import SerialPortInfo, list_serial_ports
from ok_serialio._timeout_math import TimeoutTimer

__all__ = [n for n in dir() if not n.startswith("_")]
