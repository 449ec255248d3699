"""
Binary framing for Shuttle messages.

Header layout (little-endian uint32 words):

  0:4    transfer id
  4:8    message type (0 = START, 1 = DATA, 2 = END)
  8:12   filename length (START) or sequence number (DATA)
  12:16  valid payload bytes (DATA)

START frames carry the filename in the last FILENAME_MAX bytes of the
256-byte header. DATA frames append a PAYLOAD_LEN payload after the
header. Frame sizes are fixed; nothing on the wire carries a length
prefix.
"""

import struct
from dataclasses import dataclass

from .protocol import (
    DATA_FRAME_LEN,
    END_LEN,
    FILENAME_MAX,
    FILENAME_OFFSET,
    HEADER_LEN,
    PAYLOAD_LEN,
    POS_ID,
    POS_NAME_LEN,
    POS_SEQUENCE,
    POS_TYPE,
    POS_VALID,
    START_LEN,
    DataMessage,
    EndMessage,
    Message,
    MessageType,
    StartMessage,
)

HEADER_WORDS = struct.Struct("<IIII")


class CodecError(ValueError):
    """A frame could not be encoded or decoded."""


@dataclass(frozen=True)
class FrameHeader:
    transfer_id: int
    msg_type: int
    word2: int
    word3: int


def put_uint32(value: int, data: bytearray, at: int) -> None:
    struct.pack_into("<I", data, at, value)


def frame_len(msg_type: int) -> int:
    """Return the fixed on-wire size for a message type."""
    if msg_type == MessageType.START:
        return START_LEN
    elif msg_type == MessageType.DATA:
        return DATA_FRAME_LEN
    elif msg_type == MessageType.END:
        return END_LEN
    raise CodecError(f"unknown frame type {msg_type}")


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------

def encode(message: Message) -> bytes:
    """Serialize a message into its fixed-size frame, zero-padded."""
    msg_type = message.msg_type

    if msg_type == MessageType.START:
        return _encode_start(message)
    elif msg_type == MessageType.DATA:
        return _encode_data(message)
    elif msg_type == MessageType.END:
        return _encode_end(message)
    raise CodecError(f"unknown frame type {msg_type}")


def _encode_start(message: StartMessage) -> bytes:
    # Names longer than FILENAME_MAX are cut, not rejected.
    name = message.filename[:FILENAME_MAX]
    data = bytearray(START_LEN)
    put_uint32(message.transfer_id, data, POS_ID)
    put_uint32(MessageType.START, data, POS_TYPE)
    put_uint32(len(name), data, POS_NAME_LEN)
    data[FILENAME_OFFSET : FILENAME_OFFSET + len(name)] = name
    return bytes(data)


def _encode_data(message: DataMessage) -> bytes:
    if len(message.payload) > PAYLOAD_LEN:
        raise CodecError(
            f"payload of {len(message.payload)} bytes exceeds capacity {PAYLOAD_LEN}"
        )
    data = bytearray(DATA_FRAME_LEN)
    put_uint32(message.transfer_id, data, POS_ID)
    put_uint32(MessageType.DATA, data, POS_TYPE)
    put_uint32(message.sequence, data, POS_SEQUENCE)
    put_uint32(message.valid_bytes, data, POS_VALID)
    data[HEADER_LEN : HEADER_LEN + len(message.payload)] = message.payload
    return bytes(data)


def _encode_end(message: EndMessage) -> bytes:
    data = bytearray(END_LEN)
    put_uint32(message.transfer_id, data, POS_ID)
    put_uint32(MessageType.END, data, POS_TYPE)
    return bytes(data)


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------

def decode_header(header: bytes) -> FrameHeader:
    """Pull the four header words out of a (decrypted) frame header."""
    if len(header) < HEADER_WORDS.size:
        raise CodecError(
            f"truncated header: {len(header)} bytes, need {HEADER_WORDS.size}"
        )
    transfer_id, msg_type, word2, word3 = HEADER_WORDS.unpack_from(header, 0)
    return FrameHeader(transfer_id, msg_type, word2, word3)


def decode(msg_type: int, frame: bytes) -> Message:
    """
    Rebuild a message from a decrypted frame.

    msg_type is the type word already read from the header; it picks the
    variant. For DATA frames only the header needs to be plaintext: the
    payload region is copied through as-is, which lets the receiver keep
    payloads sealed until the transfer is complete.
    """
    header = decode_header(frame)

    try:
        kind = MessageType(msg_type)
    except ValueError:
        raise CodecError(f"unknown frame type {msg_type}") from None

    if kind == MessageType.START:
        return _decode_start(header, frame)
    elif kind == MessageType.DATA:
        return _decode_data(header, frame)
    elif kind == MessageType.END:
        return EndMessage(transfer_id=header.transfer_id)
    raise CodecError(f"unknown frame type {msg_type}")


def _decode_start(header: FrameHeader, frame: bytes) -> StartMessage:
    if len(frame) < frame_len(MessageType.START):
        raise CodecError(f"truncated start frame: {len(frame)} bytes")
    name_len = header.word2
    if name_len > FILENAME_MAX:
        raise CodecError(f"filename length {name_len} exceeds {FILENAME_MAX}")
    name = frame[FILENAME_OFFSET : FILENAME_OFFSET + name_len]
    return StartMessage(transfer_id=header.transfer_id, filename=bytes(name))


def _decode_data(header: FrameHeader, frame: bytes) -> DataMessage:
    need = frame_len(MessageType.DATA)
    if len(frame) < need:
        raise CodecError(f"truncated data frame: {len(frame)} bytes, need {need}")
    if header.word3 > PAYLOAD_LEN:
        raise CodecError(f"valid byte count {header.word3} exceeds {PAYLOAD_LEN}")
    return DataMessage(
        transfer_id=header.transfer_id,
        sequence=header.word2,
        valid_bytes=header.word3,
        payload=bytes(frame[HEADER_LEN:DATA_FRAME_LEN]),
    )
