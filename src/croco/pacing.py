"""Device-imposed delays.

The cartridge firmware needs a quiet gap between receiving a command and
being polled for its answer, and between consecutive catalog requests.
These are timing requirements of the hardware, not retry or backoff knobs:
they are fixed and are never read from user config.
"""

import time

# Between bulk OUT of a command and bulk IN of its response
SETTLE_DELAY_S = 0.010

# Between consecutive rom-info requests while listing the catalog
INTER_REQUEST_DELAY_S = 0.010

# Between the device-info query and the serial-id query
SERIAL_QUERY_DELAY_S = 0.050


def settle() -> None:
    """Wait for the device to prepare a response to the command just sent."""
    time.sleep(SETTLE_DELAY_S)


def between_requests() -> None:
    """Gap between back-to-back catalog row requests."""
    time.sleep(INTER_REQUEST_DELAY_S)


def before_serial_query() -> None:
    time.sleep(SERIAL_QUERY_DELAY_S)
