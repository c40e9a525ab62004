"""Disk-based JSON key-value store."""
from __future__ import annotations

import json
from hashlib import sha1
from pathlib import Path
from typing import Any

from commons_config import commons_settings


def _read_json(path: Path) -> dict:
    try:
        payload = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return {}


class JsonKvStore:
    """One JSON file per key, written atomically."""

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path(commons_settings.KV_STORE_DIR)

    def get_path(self, key: str) -> Path:
        """Return the file path associated to ``key``."""
        digest = sha1(key.encode("utf-8"), usedforsecurity=False).hexdigest()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir / f"{digest}.json"

    def get_json(self, key: str, default: Any = None) -> Any:
        path = self.get_path(key)
        if not path.exists():
            return default
        data = _read_json(path)
        if "value" not in data:
            return default
        return data["value"]

    def put_json(self, key: str, value: Any) -> None:
        path = self.get_path(key)
        content = {"key": key, "value": value}
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(content, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise RuntimeError(f"Unable to write store file {path!s}: {exc}") from exc
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass

    def remove(self, key: str) -> None:
        self.get_path(key).unlink(missing_ok=True)

    def contains(self, key: str) -> bool:
        return self.get_path(key).exists()


__all__ = ["JsonKvStore"]
