"""
Protocol constants and message types for Shuttle.

A transfer is always Start, then zero or more Data, then End. The
message classes here are plain values; the codec module turns them
into fixed-size frames and back.
"""

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Union

KB = 1024

DATA_PORT = 31415
ACK_PORT = 31416
LOCALHOST = "127.0.0.1"

# Every transfer uses id 0; concurrent transfers are not multiplexed.
TRANSFER_ID = 0

HEADER_LEN = 256
START_LEN = 256
END_LEN = 256
PAYLOAD_LEN = 16 * KB
DATA_FRAME_LEN = HEADER_LEN + PAYLOAD_LEN

FILENAME_MAX = 128
FILENAME_OFFSET = HEADER_LEN - FILENAME_MAX

# Header word offsets (little-endian uint32).
POS_ID = 0
POS_TYPE = 4
POS_NAME_LEN = 8
POS_SEQUENCE = 8
POS_VALID = 12


class MessageType(enum.IntEnum):
    START = 0
    DATA = 1
    END = 2


@dataclass(frozen=True)
class StartMessage:
    """Initiates a transfer and names the target file."""

    transfer_id: int
    filename: bytes
    msg_type: ClassVar[MessageType] = MessageType.START


@dataclass(frozen=True)
class DataMessage:
    """
    One chunk of file data.

    valid_bytes == 0 means the whole PAYLOAD_LEN capacity is file data.
    A full chunk's real length equals the capacity, so the zero value is
    used as the "full" marker on the wire.
    """

    transfer_id: int
    sequence: int
    valid_bytes: int
    payload: bytes = field(repr=False)
    msg_type: ClassVar[MessageType] = MessageType.DATA

    @property
    def chunk_len(self) -> int:
        return self.valid_bytes or PAYLOAD_LEN

    @property
    def chunk(self) -> bytes:
        return self.payload[: self.chunk_len]


@dataclass(frozen=True)
class EndMessage:
    """Terminates a transfer."""

    transfer_id: int
    msg_type: ClassVar[MessageType] = MessageType.END


Message = Union[StartMessage, DataMessage, EndMessage]


def make_start_msg(transfer_id: int, filename: Union[str, bytes]) -> StartMessage:
    if isinstance(filename, str):
        filename = filename.encode("utf-8")
    return StartMessage(transfer_id=int(transfer_id), filename=filename[:FILENAME_MAX])


def make_data_msg(transfer_id: int, sequence: int, chunk: bytes) -> DataMessage:
    if len(chunk) > PAYLOAD_LEN:
        raise ValueError(
            f"chunk of {len(chunk)} bytes exceeds payload capacity {PAYLOAD_LEN}"
        )
    valid = 0 if len(chunk) == PAYLOAD_LEN else len(chunk)
    return DataMessage(
        transfer_id=int(transfer_id),
        sequence=int(sequence),
        valid_bytes=valid,
        payload=bytes(chunk).ljust(PAYLOAD_LEN, b"\0"),
    )


def make_end_msg(transfer_id: int) -> EndMessage:
    return EndMessage(transfer_id=int(transfer_id))
