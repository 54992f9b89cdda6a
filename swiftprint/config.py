# Configuration for SwiftPOS Print Agent
# Loaded once from config.json; missing file or keys fall back to defaults

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / 'config.json'

# Fixed device signature of the supported thermal printer. Validate against
# the actual hardware before changing.
DEFAULT_SERVICE_UUID = '000018f0-0000-1000-8000-00805f9b34fb'
DEFAULT_CHARACTERISTIC_UUID = '00002af1-0000-1000-8000-00805f9b34fb'
DEFAULT_CHUNK_SIZE = 512

DEFAULT_RELAY_TARGET = '\\\\127.0.0.1\\POS-80'


@dataclass
class StoreConfig:
    """Store identity printed in the receipt header and footer"""
    name: str = 'SWIFTPOS'
    address: str = ''
    phone: str = ''
    footer: str = 'Thank you!'


@dataclass
class AgentConfig:
    store: StoreConfig = field(default_factory=StoreConfig)
    paper_width: int = 32
    encoding: str = 'cp437'

    relay_target: str = DEFAULT_RELAY_TARGET
    relay_url: Optional[str] = None
    relay_api_key: Optional[str] = None
    relay_path: str = '/api/printer/receipt'
    relay_command: Optional[str] = None
    relay_timeout: int = 30

    ble_service_uuid: str = DEFAULT_SERVICE_UUID
    ble_characteristic_uuid: str = DEFAULT_CHARACTERISTIC_UUID
    ble_chunk_size: int = DEFAULT_CHUNK_SIZE
    ble_scan_timeout: float = 10.0
    ble_pair: bool = False
    write_timeout: Optional[float] = None

    agent_port: int = 8080
    relay_port: int = 8081
    log_path: Optional[str] = None


_STORE_KEYS = {
    'store_name': 'name',
    'store_address': 'address',
    'store_phone': 'phone',
    'footer': 'footer',
}


def config_from_dict(data: Dict[str, Any]) -> AgentConfig:
    """Build an AgentConfig from a flat dict, ignoring unknown keys"""
    store = StoreConfig(**{
        attr: str(data[key]) for key, attr in _STORE_KEYS.items() if data.get(key) is not None
    })
    known = {f.name for f in fields(AgentConfig)} - {'store'}
    values = {k: v for k, v in data.items() if k in known}
    unknown = set(data) - known - set(_STORE_KEYS)
    if unknown:
        logger.debug(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
    return AgentConfig(store=store, **values)


def load_config(path: Optional[Path] = None) -> AgentConfig:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with open(config_path, encoding='utf-8') as f:
            return config_from_dict(json.load(f) or {})
    logger.info(f"No config file at {config_path}, using defaults")
    return AgentConfig()
