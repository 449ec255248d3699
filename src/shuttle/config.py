import os
import yaml
from dataclasses import dataclass, field
from typing import Optional

from .protocol import ACK_PORT, DATA_PORT, TRANSFER_ID


@dataclass
class NetworkConfig:
    data_port: int = DATA_PORT
    ack_port: int = ACK_PORT
    bind_host: str = ""
    frame_timeout_sec: Optional[float] = None


@dataclass
class TransferConfig:
    transfer_id: int = TRANSFER_ID
    output_dir: str = "."


@dataclass
class ShuttleConfig:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)


def load_config(config_path: Optional[str] = None) -> ShuttleConfig:
    """Load configuration from file or use defaults."""
    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        network_config = NetworkConfig(**(config_data.get('network') or {}))
        transfer_config = TransferConfig(**(config_data.get('transfer') or {}))
    else:
        network_config = NetworkConfig()
        transfer_config = TransferConfig()

    return ShuttleConfig(
        network=network_config,
        transfer=transfer_config,
    )
