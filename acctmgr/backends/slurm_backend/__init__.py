"""SLURM backend module."""

import os

SLURM_CONTAINER_NAME = os.environ.get("SLURM_CONTAINER_NAME", "")

SACCTMGR_COMMAND = os.environ.get("SACCTMGR_COMMAND", "sacctmgr")
