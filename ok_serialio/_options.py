from typing import Literal

import pydantic

DataBits = Literal[5, 6, 7, 8, 16]
Parity = Literal["none", "even", "odd", "mark", "space"]
StopBits = Literal[1, 1.5, 2]
SharingType = Literal["oblivious", "polite", "exclusive"]


class SerialOptions(pydantic.BaseModel):
    """Line settings and I/O policy for a SerialPort.

    Which combinations a platform can actually apply is checked when the
    port is opened, not here; this only pins down the legal value sets.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    baud: int = pydantic.Field(default=115200, gt=0)
    data_bits: DataBits = 8
    parity: Parity = "none"
    stop_bits: StopBits = 1
    sharing: SharingType = "exclusive"
    poll_interval: float = pydantic.Field(default=0.0001, ge=0)
    write_timeout: float | None = None
    encoding: str = "utf-8"
