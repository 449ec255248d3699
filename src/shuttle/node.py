import os
import logging
from typing import Optional, Union

from .buffer import MessageBuffer
from .cipher import FrameCipher
from .config import ShuttleConfig, load_config
from .transport import ReceiverSession, SenderSession, TransferStats

logger = logging.getLogger(__name__)


def log_messages(buffer: MessageBuffer) -> None:
    for row in buffer.describe():
        logger.debug("message %s", row)


class Peer:
    """
    Orchestrator: builds buffers and sessions from the config and the
    shared cipher, and runs one transfer per call.
    """

    def __init__(self, config: ShuttleConfig, cipher: FrameCipher):
        self.config = config
        self.cipher = cipher

    def sender_session(self, peer_host: str) -> SenderSession:
        net = self.config.network
        return SenderSession(
            peer_host,
            data_port=net.data_port,
            ack_port=net.ack_port,
            bind_host=net.bind_host,
            frame_timeout=net.frame_timeout_sec,
        )

    def receiver_session(self, peer_host: str) -> ReceiverSession:
        net = self.config.network
        return ReceiverSession(
            peer_host,
            data_port=net.data_port,
            ack_port=net.ack_port,
            bind_host=net.bind_host,
            frame_timeout=net.frame_timeout_sec,
        )

    # ------------------------------------------------------------------

    def send_file(self, file_path: str, peer_host: str) -> TransferStats:
        """Send one file to the receiver at peer_host."""
        buffer = MessageBuffer.from_path(
            file_path, self.cipher, self.config.transfer.transfer_id
        )
        logger.info(
            "Sending %s (%d data messages) to %s",
            file_path,
            buffer.data_count(),
            peer_host,
        )
        log_messages(buffer)
        return self.sender_session(peer_host).send(buffer)

    def receive_file(
        self,
        peer_host: str,
        session: Optional[ReceiverSession] = None,
    ) -> str:
        """Receive one file from peer_host and return the written path."""
        output_dir = self.config.transfer.output_dir
        os.makedirs(output_dir, exist_ok=True)

        buffer = MessageBuffer(self.cipher)
        session = session or self.receiver_session(peer_host)
        session.receive(buffer)
        log_messages(buffer)

        return buffer.write(output_dir)


def create_peer(
    key: Union[str, bytes],
    config_path: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> Peer:
    """Create and configure a peer instance."""
    config = load_config(config_path)

    if output_dir is not None:
        config.transfer.output_dir = output_dir

    return Peer(config, FrameCipher.from_text(key))
