"""
Single-transaction primitive of the cartridge command protocol.

Every command is one bulk OUT frame followed by one bulk IN frame:

  host   -> [opcode][payload 0..64]
  device <- [opcode echo][data 0..127]

The echoed opcode is the protocol's only integrity check.  Nothing here
retries: a failed transaction is reported to the caller, which aborts the
operation it belongs to.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import pacing
from .constants import (
    MAX_COMMAND_FRAME,
    MAX_RESPONSE_DATA,
    MAX_RESPONSE_READ,
    STATUS_OK,
    opcode_name,
)
from .core.errors import (
    DeviceRejectedError,
    EchoMismatchError,
    FrameTooLargeError,
    NoResponseError,
    ShortResponseError,
    TransportError,
)
from .core.models import BankChunkAddress

log = logging.getLogger(__name__)


def build_frame(opcode: int, payload: bytes = b"") -> bytes:
    """Frame a command: opcode byte followed by the payload."""
    frame_len = 1 + len(payload)
    if frame_len > MAX_COMMAND_FRAME:
        raise FrameTooLargeError(opcode, frame_len, MAX_COMMAND_FRAME)
    return bytes([opcode]) + bytes(payload)


def expect_status(
    opcode: int,
    payload: bytes,
    address: Optional[BankChunkAddress] = None,
) -> None:
    """Validate a one-byte status response (handshakes and chunk acks)."""
    if not payload:
        raise ShortResponseError(opcode, 1, 0, address=address)
    if payload[0] != STATUS_OK:
        raise DeviceRejectedError(opcode, payload[0], address=address)


class TransactionEngine:
    """Executes one command/response exchange over a DeviceSession.

    The session only needs ``send(bytes) -> int`` and
    ``receive(max_len) -> bytes``.
    """

    def __init__(self, session):
        self.session = session

    def execute(
        self,
        opcode: int,
        payload: bytes = b"",
        capacity: int = MAX_RESPONSE_DATA,
    ) -> bytes:
        """Send *opcode* + *payload* and return the response data.

        The returned bytes exclude the echo byte and are silently truncated
        to *capacity*.

        Raises:
            FrameTooLargeError: payload over 64 bytes (no I/O performed).
            TransportError: bulk write/read failed.
            NoResponseError: device sent nothing back.
            EchoMismatchError: first response byte is not *opcode*.
        """
        frame = build_frame(opcode, payload)

        try:
            self.session.send(frame)
            pacing.settle()
            response = self.session.receive(MAX_RESPONSE_READ)
        except TransportError as e:
            if e.opcode is None:
                e.opcode = opcode
            raise

        if not response:
            raise NoResponseError(opcode)

        if response[0] != opcode:
            raise EchoMismatchError(opcode, response[0])

        data = bytes(response[1:1 + capacity])
        log.debug("%s: sent %d bytes, received %d bytes (returning %d)",
                  opcode_name(opcode), len(frame), len(response), len(data))
        return data
