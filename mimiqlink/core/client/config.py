"""Configuration classes for the MIMIQ client."""

import os
from typing import Optional
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Address of the QPerfect Cloud services
QPERFECT_CLOUD = "https://mimiq.qperfect.io"
# Address of the secondary QPerfect Cloud services
QPERFECT_CLOUD2 = "https://mimiqfast.qperfect.io"
# Token endpoint of the PlanQK API gateway
PLANQK_GATEWAY = "https://gateway.platform.planqk.de"

# Default refresh interval for native tokens, in seconds
DEFAULT_INTERVAL = 15 * 60

MIMIQ_API_ROOT = "api"
PLANQK_API_ROOT = "api/planqk"

DEFAULT_PUBLIC_DIR = Path(__file__).resolve().parent.parent.parent / "public"


@dataclass
class MimiqConfig:
    """Settings for connections to the MIMIQ services."""

    url: str = QPERFECT_CLOUD
    refresh_interval: float = DEFAULT_INTERVAL
    token_file: str = "qperfect.json"
    # Static assets served by the local login page
    public_dir: Path = field(default_factory=lambda: DEFAULT_PUBLIC_DIR)

    def __post_init__(self):
        if self.refresh_interval <= 0:
            raise ConfigurationError("refresh_interval must be positive.")
        self.public_dir = Path(self.public_dir)


@dataclass
class PlanqkConfig:
    """Settings for connections through the PlanQK gateway.

    Parameters left as None are read from PLANQK_API, PLANQK_CONSUMER_KEY and
    PLANQK_CONSUMER_SECRET (a local .env file is honoured).
    """

    api_url: Optional[str] = None
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    gateway_url: str = PLANQK_GATEWAY

    def __post_init__(self):
        load_dotenv()
        if self.api_url is None:
            self.api_url = os.getenv('PLANQK_API')
        if self.consumer_key is None:
            self.consumer_key = os.getenv('PLANQK_CONSUMER_KEY')
        if self.consumer_secret is None:
            self.consumer_secret = os.getenv('PLANQK_CONSUMER_SECRET')

    def validate(self) -> bool:
        if not self.api_url:
            raise ConfigurationError("No URL provided and PLANQK_API not set in environment.")
        if not self.consumer_key:
            raise ConfigurationError("No consumer key provided and PLANQK_CONSUMER_KEY not set in environment.")
        if not self.consumer_secret:
            raise ConfigurationError("No consumer secret provided and PLANQK_CONSUMER_SECRET not set in environment.")
        return True
