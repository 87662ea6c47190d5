import os
import json
import logging
from typing import Dict, Any

logger = logging.getLogger(__name__)

DATA_DIR = os.path.join(os.getcwd(), "data")
CONFIG_FILE = os.path.join(DATA_DIR, "config.json")

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": "http://localhost:8080",
    "request_timeout": 5.0,
    "stats_refresh_interval": 30.0,
    "min_identifier_length": 1,
    # Target square in camera frame pixels, centred horizontally
    "target_region": {"size": 250, "top_offset": 100},
    "last_event_id": None,
}


def load_config() -> Dict[str, Any]:
    config = dict(DEFAULT_CONFIG)
    if not os.path.exists(CONFIG_FILE):
        return config

    try:
        with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
            stored = json.load(f)
        if isinstance(stored, dict):
            config.update(stored)
    except Exception as e:
        logger.error(f"Error loading config, using defaults: {e}")

    return config


def save_config(config: Dict[str, Any]):
    os.makedirs(DATA_DIR, exist_ok=True)
    try:
        with open(CONFIG_FILE, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)
    except Exception as e:
        logger.error(f"Error saving config: {e}")


def get_api_base_url() -> str:
    url = os.environ.get("GATE_API_URL") or load_config().get("api_base_url")
    return url.rstrip('/')


def get_request_timeout() -> float:
    return float(load_config().get("request_timeout", DEFAULT_CONFIG["request_timeout"]))


def get_stats_refresh_interval() -> float:
    return float(load_config().get("stats_refresh_interval", DEFAULT_CONFIG["stats_refresh_interval"]))


def get_min_identifier_length() -> int:
    return max(1, int(load_config().get("min_identifier_length", 1)))


def get_target_region() -> Dict[str, float]:
    region = dict(DEFAULT_CONFIG["target_region"])
    region.update(load_config().get("target_region") or {})
    return region


def get_last_event_id():
    return load_config().get("last_event_id")


def set_last_event_id(event_id):
    config = load_config()
    config["last_event_id"] = event_id
    save_config(config)
