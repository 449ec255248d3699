#!/usr/bin/env python3

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from .node import create_peer
from .protocol import LOCALHOST


def setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO

    filename = "shuttle_debug.log" if debug else None

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=filename,
        filemode='w'
    )

    if debug:
        print(f"Debug logging enabled. Writing to {filename}...")


def read_key(args) -> str:
    if args.key:
        return args.key
    return getpass.getpass("Please enter your 256-bit AES cipher key: ")


def confirm_next(path: str) -> bool:
    """Ask the operator to restart the receiver before the next transfer."""
    answer = input(
        f"Another file? Start the receiver again, then press Enter to send {path} (n to stop): "
    )
    return answer.strip().lower() not in ("n", "no")


# ---------------------------------------------------------------------------

def cmd_send(args) -> int:
    """Handle send command."""
    try:
        setup_logging(args.debug)
        peer = create_peer(read_key(args), config_path=args.config)

        for idx, path in enumerate(args.files):
            # The receiver exits after each transfer; wait for it to restart.
            if idx > 0 and not confirm_next(path):
                print("Stopping before the remaining files")
                break
            print(f"Sending {path} to {args.to}")
            stats = peer.send_file(path, args.to)
            print(f"Frames sent: {stats.frames}")
            print(f"Bytes sent: {stats.bytes_on_wire}")
            if stats.errors:
                print(f"Errors: {stats.errors}")

        return 0

    except Exception as e:
        print(f"Error: {e}")
        return 1


def cmd_recv(args) -> int:
    """Handle recv command."""
    try:
        setup_logging(args.debug)
        peer = create_peer(
            read_key(args),
            config_path=args.config,
            output_dir=args.output_dir,
        )

        print(f"Waiting for a file from {args.sender} (Press Ctrl+C to stop)")
        path = peer.receive_file(args.sender)
        print(f"Saved {path}")
        return 0

    except KeyboardInterrupt:
        print("\nShutting down receiver...")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shuttle",
        description="Shuttle: encrypted stop-and-wait file transfer over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start receiver, expecting a file from 10.0.0.5
  shuttle recv --from 10.0.0.5 --output-dir ./incoming

  # Send two files, one transfer each
  shuttle send --to 10.0.0.7 report.pdf data.csv
""",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Configuration file path",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    send_parser = subparsers.add_parser("send", help="Send one or more files")
    send_parser.add_argument(
        "--to",
        required=True,
        help="IP address of the receiver, without port",
    )
    send_parser.add_argument(
        "--key",
        type=str,
        help="AES-256 key (prompted for if omitted)",
    )
    send_parser.add_argument("files", nargs="+", help="Files to send, in order")

    recv_parser = subparsers.add_parser("recv", help="Receive one file")
    recv_parser.add_argument(
        "--from",
        dest="sender",
        default=LOCALHOST,
        help=f"IP address of the sender, without port (default: {LOCALHOST})",
    )
    recv_parser.add_argument(
        "--key",
        type=str,
        help="AES-256 key (prompted for if omitted)",
    )
    recv_parser.add_argument(
        "--output-dir",
        type=str,
        help="Directory for the received file (default: from config, else cwd)",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "send":
        return cmd_send(args)
    elif args.command == "recv":
        return cmd_recv(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
