"""Module containing configuration handling and shared helpers of the tool.

The constants defined here can be overridden via environment variables.
"""

import os

ACCTMGR_CONFIG_PATH = os.environ.get("ACCTMGR_CONFIG_PATH", "acctmgr-config.yaml")

# Name of the variable overriding track_wckey of the configuration file
TRACK_WCKEY_VARIABLE = "ACCTMGR_TRACK_WCKEY"

BUSY_DATABASE_NOTICE = "Database is busy or waiting for lock from other user."
