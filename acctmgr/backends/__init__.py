"""Storage backends for the accounting database."""

import logging
import sys
from enum import Enum


class BackendType(Enum):
    """Enum for storage backend types."""

    FILE = "file"
    SLURM = "slurm"


console_handler = logging.StreamHandler(sys.stderr)
logger = logging.getLogger(__name__)
formatter = logging.Formatter("[%(levelname)s] [%(asctime)s] %(message)s")
console_handler.setFormatter(formatter)

logger.addHandler(console_handler)
logger.setLevel(logging.WARNING)
