"""FilesystemProfileStore: one JSON file per entity profile."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from ..core.snapshot import profile_from_dict, profile_to_dict
from ..types import CorruptStateError, EntityProfile

logger = logging.getLogger(__name__)

SUFFIX = ".profile.json"


class FilesystemProfileStore:
    """Persist exported profiles under ``root``. Writes go through a temp file."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._ensure_root()

    def _ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _profile_path(self, entity_id: str) -> Path:
        return self.root / f"{quote(entity_id, safe='')}{SUFFIX}"

    def save(self, profile: EntityProfile) -> Path:
        path = self._profile_path(profile.entity_id)
        data = json.dumps(profile_to_dict(profile), indent=2, ensure_ascii=False)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp, path)
        except OSError as e:
            logger.error(f"Failed to save profile {profile.entity_id}: {e}")
            Path(tmp).unlink(missing_ok=True)
            raise
        return path

    def load(self, entity_id: str) -> EntityProfile | None:
        """Return the stored profile, or None if there is none.

        Unreadable or malformed files raise CorruptStateError.
        """
        path = self._profile_path(entity_id)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptStateError(f"Profile file {path} is not valid JSON: {e}") from e
        profile = profile_from_dict(data)
        if profile.entity_id != entity_id:
            raise CorruptStateError(
                f"Profile file {path} holds {profile.entity_id!r}, expected {entity_id!r}"
            )
        return profile

    def list_entities(self) -> list[str]:
        return sorted(
            unquote(p.name[: -len(SUFFIX)])
            for p in self.root.glob(f"*{SUFFIX}")
            if p.is_file()
        )

    def delete(self, entity_id: str) -> bool:
        path = self._profile_path(entity_id)
        if not path.is_file():
            return False
        path.unlink()
        return True
