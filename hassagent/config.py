from __future__ import annotations
import os

# Application identity reported to the sink at registration
APP_NAME = "hass-agent"
APP_ID = os.getenv("AGENT_APP_ID", "org.hassagent.agent")
APP_VERSION = "0.4.0"

# Directory for preferences.json and the log file
CONFIG_DIR = os.path.expanduser(
    os.getenv("AGENT_CONFIG_DIR", os.path.join("~", ".config", APP_NAME))
)
PREFERENCES_FILE = os.path.join(CONFIG_DIR, "preferences.json")
LOG_FILE_NAME = "hass-agent.log"

LOG_LEVEL = os.getenv("AGENT_LOG_LEVEL", "INFO").upper()

# Seconds before a single report to the sink is abandoned
REQUEST_TIMEOUT = float(os.getenv("AGENT_REQUEST_TIMEOUT", "15"))

# Seconds between producer polls
POLL_INTERVAL = float(os.getenv("AGENT_POLL_INTERVAL", "60"))

# Force encrypted requests even when the sink did not hand out a secret.
# When unset, encryption follows whether registration returned a secret.
ENCRYPT = os.getenv("AGENT_ENCRYPT", "").lower() in ("1", "true", "yes")

# Local status API
API_HOST = os.getenv("AGENT_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("AGENT_API_PORT", "8787"))
