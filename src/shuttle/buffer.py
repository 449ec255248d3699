import os
import logging
from dataclasses import replace
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Sequence

from .cipher import FrameCipher
from .codec import decode, decode_header, encode
from .protocol import (
    HEADER_LEN,
    PAYLOAD_LEN,
    TRANSFER_ID,
    Message,
    MessageType,
    StartMessage,
    make_data_msg,
    make_end_msg,
    make_start_msg,
)

logger = logging.getLogger(__name__)


class TransferStateError(RuntimeError):
    """A buffer was used in a way its role or lifecycle does not allow."""


def base_name(path: str) -> str:
    """File name component of a path, splitting on both '/' and '\\'."""
    idx = max(path.rfind("/"), path.rfind("\\"))
    return path[idx + 1 :]


class MessageBuffer:
    """
    Ordered messages of one file transfer.

    Sender buffers are built once from a file and are read-only after
    that. Receiver buffers start empty and grow by one message per
    accepted frame until an END arrives. DATA payloads on the receive
    side stay encrypted until decrypt_payloads() runs.
    """

    def __init__(
        self,
        cipher: FrameCipher,
        messages: Optional[Sequence[Message]] = None,
        done: bool = False,
        readonly: bool = False,
    ):
        self.cipher = cipher
        self._messages: List[Message] = list(messages or [])
        self._done = done
        self._readonly = readonly
        # Messages before this index hold plaintext payloads. Sender
        # buffers are built from plaintext, receiver payloads arrive sealed.
        self._plain_upto = len(self._messages)

    # ------------------------------------------------------------------
    # Sender side
    # ------------------------------------------------------------------

    @classmethod
    def from_stream(
        cls,
        filename: str,
        stream: BinaryIO,
        cipher: FrameCipher,
        transfer_id: int = TRANSFER_ID,
    ) -> "MessageBuffer":
        """Chunk a binary stream into START, DATA..., END."""
        messages: List[Message] = [make_start_msg(transfer_id, filename)]

        sequence = 0
        while True:
            chunk = stream.read(PAYLOAD_LEN)
            if not chunk:
                break
            messages.append(make_data_msg(transfer_id, sequence, chunk))
            sequence += 1

        messages.append(make_end_msg(transfer_id))
        return cls(cipher, messages, done=True, readonly=True)

    @classmethod
    def from_path(
        cls,
        path: str,
        cipher: FrameCipher,
        transfer_id: int = TRANSFER_ID,
    ) -> "MessageBuffer":
        """Read the file at path into a sender buffer."""
        if not os.path.isfile(path):
            raise FileNotFoundError(f"File not found: {path}")

        filename = base_name(path)
        logger.info("Sending file: %s", filename)

        with open(path, "rb") as f:
            return cls.from_stream(filename, f, cipher, transfer_id)

    def iter_frames(self) -> Iterator[bytes]:
        """Encoded and encrypted frames, in send order."""
        for msg in self._messages:
            yield self.cipher.seal_outgoing(encode(msg))

    # ------------------------------------------------------------------
    # Receiver side
    # ------------------------------------------------------------------

    def process_frame(self, sealed: bytes) -> Message:
        """
        Decrypt a frame's header, decode it, and append the message.

        Raises CipherError/CodecError for frames that cannot be read; the
        buffer is left unchanged in that case.
        """
        if self._readonly:
            raise TransferStateError("cannot append to a sender buffer")
        if self._done:
            raise TransferStateError("transfer already received its END message")

        header = self.cipher.open_header(sealed)
        msg_type = decode_header(header).msg_type
        msg = decode(msg_type, header + sealed[HEADER_LEN:])

        if msg.msg_type == MessageType.START:
            logger.info("Receiving file: %s", msg.filename.decode("utf-8", "replace"))
        elif msg.msg_type == MessageType.DATA:
            logger.debug("Received chunk %d (%d valid bytes)", msg.sequence, msg.chunk_len)
        elif msg.msg_type == MessageType.END:
            self._done = True
            logger.info("Transfer %d complete: %d messages", msg.transfer_id, len(self._messages) + 1)

        self._messages.append(msg)
        return msg

    def decrypt_payloads(self) -> None:
        """Decrypt every still-sealed DATA payload in place."""
        for idx in range(self._plain_upto, len(self._messages)):
            msg = self._messages[idx]
            if msg.msg_type == MessageType.DATA:
                plain = self.cipher.open_payload(msg.payload)
                self._messages[idx] = replace(msg, payload=plain)
        self._plain_upto = len(self._messages)

    # ------------------------------------------------------------------
    # Flattening
    # ------------------------------------------------------------------

    def iter_chunks(self) -> Iterator[bytes]:
        """Valid payload bytes of each DATA message, in arrival order."""
        sealed = self._messages[self._plain_upto :]
        if any(m.msg_type == MessageType.DATA for m in sealed):
            raise TransferStateError("payloads are still encrypted")
        for msg in self._messages:
            if msg.msg_type == MessageType.DATA:
                yield msg.chunk

    def to_bytes(self) -> bytes:
        self.decrypt_payloads()
        return b"".join(self.iter_chunks())

    def write(self, stem: str = "") -> str:
        """
        Write the reassembled file as stem/<name from START> and return its
        path. An empty stem means the current directory.
        """
        self.decrypt_payloads()
        path = os.path.join(stem, self.name) if stem else self.name

        written = 0
        with open(path, "wb") as f:
            for chunk in self.iter_chunks():
                f.write(chunk)
                written += len(chunk)

        logger.info("Wrote %d bytes to %s", written, path)
        return path

    # ------------------------------------------------------------------

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def is_done(self) -> bool:
        return self._done

    @property
    def start(self) -> StartMessage:
        if not self._messages or self._messages[0].msg_type != MessageType.START:
            raise TransferStateError("transfer has no START message")
        return self._messages[0]

    @property
    def name(self) -> str:
        """
        Target filename from the START message. Only the final path
        component is kept so a peer cannot write outside the output dir.
        """
        name = base_name(self.start.filename.decode("utf-8", "replace"))
        if name in ("", ".", ".."):
            raise TransferStateError(f"unusable filename {self.start.filename!r}")
        return name

    def data_count(self) -> int:
        return sum(1 for m in self._messages if m.msg_type == MessageType.DATA)

    def describe(self) -> List[Dict[str, Any]]:
        """Per-message summaries for debug output."""
        rows: List[Dict[str, Any]] = []
        for msg in self._messages:
            row: Dict[str, Any] = {
                "type": msg.msg_type.name,
                "transfer_id": msg.transfer_id,
            }
            if msg.msg_type == MessageType.START:
                row["filename"] = msg.filename.decode("utf-8", "replace")
            elif msg.msg_type == MessageType.DATA:
                row["sequence"] = msg.sequence
                row["valid_bytes"] = msg.valid_bytes
            rows.append(row)
        return rows

    def __len__(self) -> int:
        return len(self._messages)
