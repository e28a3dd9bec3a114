"""Runtime settings read from the environment."""
import os
from typing import Optional


def _optional_int(name: str) -> Optional[int]:
    value = os.environ.get(name, "").strip()
    return int(value) if value else None


# Refresh-retry loop
REFRESH_RETRY_MS = int(os.environ.get("CARTSYNC_REFRESH_RETRY_MS", "200"))
REFRESH_MAX_ATTEMPTS = _optional_int("CARTSYNC_REFRESH_MAX_ATTEMPTS")

# Synchronization bus
CART_CHANNEL = os.environ.get("CARTSYNC_CHANNEL", "CartMessageChannel")

# HTTP CartStore
CART_SERVICE_URL = os.environ.get("CART_SERVICE_URL", "")
CART_SERVICE_TOKEN = os.environ.get("CART_SERVICE_TOKEN", "")
CART_SERVICE_TIMEOUT = float(os.environ.get("CART_SERVICE_TIMEOUT", "10"))
