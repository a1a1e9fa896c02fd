"""SerialDevice for platforms without fd readiness (Windows): sleep and poll"""

import time

from ok_serialio import _device


class PollingDevice(_device.PyserialDevice):
    def wait_readable(
        self, timeout: float | int, poll_interval: float | int
    ) -> None:
        if self.in_waiting() <= 0:
            time.sleep(min(timeout, poll_interval))
