#!/usr/bin/env python3

import unittest
import tempfile
import os
import shutil
from unittest.mock import Mock, patch

from shuttle.buffer import MessageBuffer
from shuttle.cipher import FrameCipher
from shuttle.cli import main
from shuttle.config import ShuttleConfig
from shuttle.node import Peer, create_peer
from shuttle.protocol import MessageType
from shuttle.transport import TransferStats

KEY = "11" * 32


class FakeReceiverSession:
    """Feeds pre-sealed frames into the buffer instead of reading sockets."""

    def __init__(self, frames):
        self.frames = frames

    def receive(self, buffer):
        for frame in self.frames:
            buffer.process_frame(frame)
        return TransferStats(frames=len(self.frames))


class TestPeer(unittest.TestCase):
    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = ShuttleConfig()
        self.config.transfer.output_dir = os.path.join(self.temp_dir, "received")
        self.cipher = FrameCipher.from_text(KEY)
        self.peer = Peer(self.config, self.cipher)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def _write_file(self, name, data):
        path = os.path.join(self.temp_dir, name)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def test_send_file_builds_buffer_and_uses_config_ports(self):
        path = self._write_file("hello.txt", b"Hello, Shuttle!")
        self.config.network.data_port = 40001
        self.config.network.ack_port = 40002

        with patch("shuttle.node.SenderSession.send", autospec=True) as send_mock:
            send_mock.return_value = TransferStats(frames=3)
            stats = self.peer.send_file(path, "10.0.0.7")

        self.assertEqual(stats.frames, 3)
        session, buffer = send_mock.call_args[0]
        self.assertEqual(session.peer_host, "10.0.0.7")
        self.assertEqual(session.data_port, 40001)
        self.assertEqual(session.ack_port, 40002)
        self.assertEqual(
            [m.msg_type for m in buffer.messages],
            [MessageType.START, MessageType.DATA, MessageType.END],
        )

    def test_receive_file_writes_into_output_dir(self):
        content = os.urandom(30000)
        path = self._write_file("blob.bin", content)
        frames = list(MessageBuffer.from_path(path, self.cipher).iter_frames())

        out_path = self.peer.receive_file("127.0.0.1", session=FakeReceiverSession(frames))

        self.assertEqual(
            out_path, os.path.join(self.config.transfer.output_dir, "blob.bin")
        )
        with open(out_path, "rb") as f:
            self.assertEqual(f.read(), content)

    def test_send_file_logs_message_summary_at_debug(self):
        path = self._write_file("note.txt", b"abc")

        with patch("shuttle.node.SenderSession.send", return_value=TransferStats(frames=3)):
            with self.assertLogs("shuttle.node", level="DEBUG") as logs:
                self.peer.send_file(path, "10.0.0.7")

        debug_lines = [r.getMessage() for r in logs.records if r.levelname == "DEBUG"]
        self.assertEqual(len(debug_lines), 3)
        self.assertIn("'type': 'START'", debug_lines[0])
        self.assertIn("'filename': 'note.txt'", debug_lines[0])
        self.assertIn("'valid_bytes': 3", debug_lines[1])
        self.assertIn("'type': 'END'", debug_lines[2])

    def test_receive_file_logs_message_summary_at_debug(self):
        path = self._write_file("two.bin", os.urandom(20000))
        frames = list(MessageBuffer.from_path(path, self.cipher).iter_frames())

        with self.assertLogs("shuttle.node", level="DEBUG") as logs:
            self.peer.receive_file("127.0.0.1", session=FakeReceiverSession(frames))

        types = [
            r.getMessage().split("'type': '")[1].split("'")[0]
            for r in logs.records
            if r.levelname == "DEBUG"
        ]
        self.assertEqual(types, ["START", "DATA", "DATA", "END"])

    def test_create_peer_applies_output_dir(self):
        peer = create_peer(KEY, output_dir=self.temp_dir)
        self.assertEqual(peer.config.transfer.output_dir, self.temp_dir)


class TestCli(unittest.TestCase):
    def test_no_command_prints_help(self):
        self.assertEqual(main([]), 1)

    @patch("shuttle.cli.setup_logging")
    @patch("shuttle.cli.create_peer")
    def test_send_each_file_in_order(self, create_peer_mock, _logging):
        peer = Mock()
        create_peer_mock.return_value = peer
        events = []
        peer.send_file.side_effect = lambda path, host: (
            events.append(("send", path)) or TransferStats(frames=2)
        )

        with patch("shuttle.cli.confirm_next") as confirm_mock:
            confirm_mock.side_effect = lambda path: events.append(("confirm", path)) or True
            rc = main(["send", "--to", "10.0.0.7", "--key", KEY, "a.bin", "b.bin", "c.bin"])

        self.assertEqual(rc, 0)
        create_peer_mock.assert_called_once_with(KEY, config_path=None)
        # The operator is asked before every transfer after the first.
        self.assertEqual(
            events,
            [
                ("send", "a.bin"),
                ("confirm", "b.bin"),
                ("send", "b.bin"),
                ("confirm", "c.bin"),
                ("send", "c.bin"),
            ],
        )

    @patch("shuttle.cli.setup_logging")
    @patch("shuttle.cli.create_peer")
    def test_send_stops_when_operator_declines(self, create_peer_mock, _logging):
        peer = create_peer_mock.return_value
        peer.send_file.return_value = TransferStats(frames=2)

        with patch("builtins.input", return_value="n") as input_mock:
            rc = main(["send", "--to", "10.0.0.7", "--key", KEY, "a.bin", "b.bin"])

        self.assertEqual(rc, 0)
        input_mock.assert_called_once()
        self.assertEqual([c.args for c in peer.send_file.call_args_list], [("a.bin", "10.0.0.7")])

    @patch("shuttle.cli.setup_logging")
    @patch("shuttle.cli.create_peer")
    def test_single_file_does_not_prompt(self, create_peer_mock, _logging):
        create_peer_mock.return_value.send_file.return_value = TransferStats(frames=3)

        with patch("builtins.input") as input_mock:
            rc = main(["send", "--to", "10.0.0.7", "--key", KEY, "a.bin"])

        self.assertEqual(rc, 0)
        input_mock.assert_not_called()

    @patch("shuttle.cli.setup_logging")
    @patch("shuttle.cli.create_peer")
    def test_send_error_returns_one(self, create_peer_mock, _logging):
        create_peer_mock.return_value.send_file.side_effect = FileNotFoundError("gone")
        rc = main(["send", "--to", "10.0.0.7", "--key", KEY, "missing.bin"])
        self.assertEqual(rc, 1)

    @patch("shuttle.cli.setup_logging")
    @patch("shuttle.cli.getpass.getpass", return_value=KEY)
    @patch("shuttle.cli.create_peer")
    def test_recv_prompts_for_key_and_defaults_to_localhost(
        self, create_peer_mock, getpass_mock, _logging
    ):
        create_peer_mock.return_value.receive_file.return_value = "out.bin"

        rc = main(["recv", "--output-dir", "incoming"])

        self.assertEqual(rc, 0)
        getpass_mock.assert_called_once()
        create_peer_mock.assert_called_once_with(
            KEY, config_path=None, output_dir="incoming"
        )
        create_peer_mock.return_value.receive_file.assert_called_once_with("127.0.0.1")


if __name__ == '__main__':
    unittest.main()
