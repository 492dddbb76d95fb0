"""Output directory management."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config.settings import settings


def create_output_dir(name: str, timestamp: Optional[datetime] = None) -> Path:
    if timestamp is None:
        timestamp = datetime.now()
    dirpath = settings.output_dir / f"{name}_{timestamp.strftime('%Y%m%d_%H%M%S')}"
    dirpath.mkdir(parents=True, exist_ok=True)
    return dirpath
