import json
import logging
import logging.config
from pathlib import Path

LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[3] / "logging.json"


def configure_logging(config_path: Path = LOGGING_CONFIG_PATH) -> None:
    if config_path.exists():
        logging.config.dictConfig(json.loads(config_path.read_text(encoding="utf-8")))
    else:
        logging.basicConfig(level=logging.INFO)
