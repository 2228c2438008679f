from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

SAMPLE_RECORD: Dict[str, Any] = {
    "id": 1,
    "price": 99.99,
    "quantity": 3,
    "discount": 0.1,
    "customer": {"name": "Jane Doe", "city": "Simi Valley", "state": "CA"},
    "created_at": "2025-01-15",
}


class Settings(BaseModel):
    default_max_iterations: int = Field(1000, ge=0)  # cap for a while node with no Max input
    log_level: str = "WARNING"
    sample_record: Dict[str, Any] = Field(default_factory=lambda: dict(SAMPLE_RECORD))


def load_settings(path: Optional[Path] = None) -> Settings:
    if path is None:
        return Settings()
    data = yaml.safe_load(Path(path).read_text()) or {}
    return Settings(**data)
