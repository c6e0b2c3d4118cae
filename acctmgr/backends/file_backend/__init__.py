"""Accounting database kept in a local YAML file."""

import os

DEFAULT_DATABASE_PATH = os.environ.get("ACCTMGR_DATABASE_PATH", "acctmgr-db.yaml")
