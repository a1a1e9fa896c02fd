import json
import logging
import os
import pathlib

import msgspec
import natsort
from serial.tools import list_ports
from serial.tools import list_ports_common

from ok_serialio import _exceptions

log = logging.getLogger("ok_serialio.scanning")

SCAN_OVERRIDE_VAR = "OK_SERIALIO_SCAN_OVERRIDE"


class SerialPortInfo(msgspec.Struct, frozen=True, order=True):
    """A device path that SerialPort could open, with what the OS says of it"""

    name: str
    attr: dict[str, str]

    def __str__(self):
        return self.name


def list_serial_ports() -> list[SerialPortInfo]:
    """Returns the serial ports on this system, naturally sorted by name"""

    if ov := os.getenv(SCAN_OVERRIDE_VAR):
        out = _read_override(ov)
        log.debug("$%s (%s): %d ports", SCAN_OVERRIDE_VAR, ov, len(out))
    else:
        try:
            ports = list_ports.comports()
        except OSError as ex:
            raise _exceptions.SerialScanException("Can't scan serial") from ex
        out = [_convert_port(p) for p in ports]

    out.sort(key=natsort.natsort_keygen(key=lambda p: p.name, alg=natsort.ns.P))
    log.debug("Found %d ports", len(out))
    return out


def _read_override(path: str) -> list[SerialPortInfo]:
    try:
        data = json.loads(pathlib.Path(path).read_text())
        return msgspec.convert(
            [{"name": k, "attr": v} for k, v in data.items()],
            list[SerialPortInfo],
        )
    except (OSError, ValueError, AttributeError, msgspec.ValidationError) as ex:
        msg = f"Can't read ${SCAN_OVERRIDE_VAR} {path}"
        raise _exceptions.SerialScanException(msg) from ex


def _convert_port(p: list_ports_common.ListPortInfo) -> SerialPortInfo:
    _NA = (None, "", "n/a")
    attr = {k.lower(): str(v) for k, v in vars(p).items() if v not in _NA}
    return SerialPortInfo(name=p.device, attr=attr)
