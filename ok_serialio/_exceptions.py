"""Exception hierarchy for ok_serialio"""


class SerialException(OSError):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port


class SerialIoException(SerialException):
    pass


class SerialNotOpen(SerialIoException):
    pass


class SerialOpenException(SerialException):
    pass


class SerialOpenNotFound(SerialOpenException):
    pass


class SerialOpenDenied(SerialOpenException):
    pass


class SerialOpenBusy(SerialOpenException):
    pass


class SerialOpenUnsupported(SerialOpenException):
    pass


class SerialScanException(SerialException):
    pass
