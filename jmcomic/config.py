from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from typing import List, Optional

DEFAULT_CONFIG_PATH = os.path.join("plugins-config", "jmcomic", "config.json")
DEFAULT_CONCURRENCY = 10


@dataclass
class Config:
    base_dir: str = "jmDownload"
    batch_size: int = 20
    pdf_max_pages: int = 200
    # 0 (or >= 100) disables recompression, 1-99 is the JPEG quality
    image_quality: int = 0
    pdf_password: str = ""
    cleanup_after: bool = False
    jm_domains: List[str] = field(default_factory=list)
    concurrent_download: int = DEFAULT_CONCURRENCY
    path: Optional[str] = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, path: str = DEFAULT_CONFIG_PATH) -> "Config":
        """Loads the JSON config at ``path``, writing a default one if missing."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        if not os.path.exists(path):
            config = cls(path=path)
            config.save()
            os.makedirs(config.base_dir, exist_ok=True)
            return config

        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a JSON object.")

        known = {f.name for f in fields(cls) if f.name != "path"}
        config = cls(path=path, **{k: v for k, v in raw.items() if k in known})
        config.normalize()
        os.makedirs(config.base_dir, exist_ok=True)
        return config

    def normalize(self) -> None:
        if self.concurrent_download <= 0:
            self.concurrent_download = DEFAULT_CONCURRENCY
        if self.image_quality < 0:
            self.image_quality = 0
        elif self.image_quality > 100:
            self.image_quality = 100
        self.jm_domains = [d.strip() for d in self.jm_domains or [] if d and d.strip()]

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("path", None)
        return data

    def save(self, path: Optional[str] = None) -> None:
        target = path or self.path
        if not target:
            return
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(target, "w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2, ensure_ascii=False)

    @property
    def compression_enabled(self) -> bool:
        return 0 < self.image_quality < 100


__all__ = ["Config", "DEFAULT_CONFIG_PATH"]
