import enum
import queue
import socket
import threading
import time
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .buffer import MessageBuffer
from .cipher import CipherError
from .codec import CodecError
from .protocol import ACK_PORT, DATA_FRAME_LEN, DATA_PORT

logger = logging.getLogger(__name__)


class TransportError(OSError):
    """A session could not set up or keep up its sockets."""


class TransportTimeout(TransportError):
    """A configured per-frame timeout expired."""


class SessionState(enum.Enum):
    IDLE = "idle"
    WAIT_ACCEPT = "wait_accept"
    SENDING = "sending"
    WAIT_ACK = "wait_ack"
    LISTENING = "listening"
    READING = "reading"
    PROCESSING = "processing"
    ACKING = "acking"
    DONE = "done"


@dataclass
class TransferStats:
    frames: int = 0
    bytes_on_wire: int = 0
    errors: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: Optional[float] = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)


# ----------------------------------------------------------------------
# Primitives
# ----------------------------------------------------------------------

class AckSignal:
    """
    One-shot handoff between the ack-accept worker and the send loop.

    A single-slot queue: the worker puts exactly once, the send loop
    takes exactly once. A fresh signal is made for every frame.
    """

    def __init__(self):
        self._slot: "queue.Queue[bool]" = queue.Queue(maxsize=1)

    def set(self, accepted: bool = True) -> None:
        try:
            self._slot.put_nowait(accepted)
        except queue.Full:
            raise RuntimeError("ack signal already set") from None

    def wait(self, timeout: Optional[float] = None) -> bool:
        try:
            return self._slot.get(timeout=timeout)
        except queue.Empty:
            raise TransportTimeout(f"no ack within {timeout} s") from None


class Listener:
    """A bound, listening TCP socket owned by one session."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.closed = False

    @classmethod
    def open(
        cls, host: str, port: int, timeout: Optional[float] = None
    ) -> "Listener":
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen()
            sock.settimeout(timeout)
        except OSError as e:
            sock.close()
            logger.error("[LISTEN ERROR] %s:%d: %s", host, port, e)
            raise TransportError(f"cannot listen on {host}:{port}: {e}") from e
        logger.debug("Listening on %s:%d", host, port)
        return cls(sock)

    @property
    def address(self) -> Tuple[str, int]:
        return self.sock.getsockname()

    def accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        try:
            return self.sock.accept()
        except socket.timeout:
            raise TransportTimeout("accept timed out") from None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            # Wakes a worker thread still blocked in accept().
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("Listener was not connected at shutdown")
        self.sock.close()
        logger.debug("Listener closed")

    def __enter__(self) -> "Listener":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def read_frame(conn: socket.socket, limit: int = DATA_FRAME_LEN) -> bytes:
    """Read from conn until EOF or until limit bytes have arrived."""
    data = bytearray()
    while len(data) < limit:
        try:
            part = conn.recv(limit - len(data))
        except socket.timeout:
            raise TransportTimeout("frame read timed out") from None
        if not part:
            break
        data.extend(part)
    return bytes(data)


# ----------------------------------------------------------------------
# Sender
# ----------------------------------------------------------------------

class SenderSession:
    """
    Pushes a buffer's frames to the receiver, one at a time.

    Frame N+1 is not dialed until the receiver has connected to our ack
    listener for frame N.
    """

    def __init__(
        self,
        peer_host: str,
        data_port: int = DATA_PORT,
        ack_port: int = ACK_PORT,
        bind_host: str = "",
        frame_timeout: Optional[float] = None,
    ):
        self.peer_host = peer_host
        self.data_port = data_port
        self.ack_port = ack_port
        self.bind_host = bind_host
        self.frame_timeout = frame_timeout
        self.state = SessionState.IDLE

    def send(self, buffer: MessageBuffer) -> TransferStats:
        stats = TransferStats()
        dest = (self.peer_host, self.data_port)

        with Listener.open(self.bind_host, self.ack_port) as ack_listener:
            for frame in buffer.iter_frames():
                self.state = SessionState.WAIT_ACCEPT
                signal = AckSignal()
                waiter = threading.Thread(
                    target=self._await_ack, args=(ack_listener, signal), daemon=True
                )
                waiter.start()

                self.state = SessionState.SENDING
                if self._send_frame(frame, dest):
                    stats.bytes_on_wire += len(frame)
                else:
                    stats.errors += 1
                stats.frames += 1

                self.state = SessionState.WAIT_ACK
                if not signal.wait(self.frame_timeout):
                    stats.errors += 1
                waiter.join()

        self.state = SessionState.DONE
        stats.end_ts = time.monotonic()
        logger.info(
            "Sent %d frames (%d bytes) to %s:%d",
            stats.frames,
            stats.bytes_on_wire,
            self.peer_host,
            self.data_port,
        )
        return stats

    def _send_frame(self, frame: bytes, dest: Tuple[str, int]) -> bool:
        try:
            with socket.create_connection(dest, timeout=self.frame_timeout) as conn:
                conn.sendall(frame)
        except OSError as e:
            logger.error("[SEND ERROR] %s:%d: %s", dest[0], dest[1], e)
            return False
        logger.debug("Bytes written: %d", len(frame))
        return True

    @staticmethod
    def _await_ack(listener: Listener, signal: AckSignal) -> None:
        try:
            conn, addr = listener.sock.accept()
        except OSError as e:
            if not listener.closed:
                logger.error("[ACK ERROR] %s", e)
            signal.set(False)
            return
        conn.close()
        logger.debug("Ack from %s:%d", addr[0], addr[1])
        signal.set(True)


# ----------------------------------------------------------------------
# Receiver
# ----------------------------------------------------------------------

class ReceiverSession:
    """
    Accepts frames on the data channel until the buffer sees END,
    acknowledging each one by dialing the sender's ack listener.
    """

    def __init__(
        self,
        peer_host: str,
        data_port: int = DATA_PORT,
        ack_port: int = ACK_PORT,
        bind_host: str = "",
        frame_timeout: Optional[float] = None,
    ):
        self.peer_host = peer_host
        self.data_port = data_port
        self.ack_port = ack_port
        self.bind_host = bind_host
        self.frame_timeout = frame_timeout
        self.state = SessionState.IDLE
        self.ready = threading.Event()

    def receive(self, buffer: MessageBuffer) -> TransferStats:
        stats = TransferStats()

        with Listener.open(self.bind_host, self.data_port, self.frame_timeout) as data_listener:
            self.ready.set()
            while not buffer.is_done:
                self.state = SessionState.LISTENING
                try:
                    conn, addr = data_listener.accept()
                except TransportTimeout:
                    raise
                except OSError as e:
                    logger.error("[ACCEPT ERROR] %s", e)
                    stats.errors += 1
                    continue

                self.state = SessionState.READING
                with conn:
                    conn.settimeout(self.frame_timeout)
                    try:
                        frame = read_frame(conn)
                    except TransportTimeout:
                        raise
                    except OSError as e:
                        logger.error("[READ ERROR] %s:%d: %s", addr[0], addr[1], e)
                        frame = b""
                        stats.errors += 1
                logger.debug("Bytes received: %d", len(frame))
                stats.frames += 1
                stats.bytes_on_wire += len(frame)

                self.state = SessionState.PROCESSING
                try:
                    buffer.process_frame(frame)
                except (CipherError, CodecError) as e:
                    logger.error("[FRAME ERROR] Could not read message: %s", e)
                    stats.errors += 1

                self.state = SessionState.ACKING
                if not self._send_ack():
                    stats.errors += 1

        self.state = SessionState.DONE
        stats.end_ts = time.monotonic()
        logger.info("Received %d frames (%d bytes)", stats.frames, stats.bytes_on_wire)
        return stats

    def _send_ack(self) -> bool:
        try:
            conn = socket.create_connection(
                (self.peer_host, self.ack_port), timeout=self.frame_timeout
            )
        except OSError as e:
            logger.error("[ACK ERROR] %s:%d: %s", self.peer_host, self.ack_port, e)
            return False
        conn.close()
        return True
