import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import orjson
from pydantic import ValidationError

from .schema import CatalogSnapshot

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write to a hidden sibling, fsync, then rename over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def dump_snapshot(snapshot: CatalogSnapshot) -> bytes:
    return orjson.dumps(snapshot.to_record(), option=orjson.OPT_INDENT_2) + b"\n"


def read_snapshot(path: Path) -> Optional[CatalogSnapshot]:
    if not path.exists():
        return None
    try:
        return CatalogSnapshot.model_validate(orjson.loads(path.read_bytes()))
    except (orjson.JSONDecodeError, ValidationError, OSError) as e:
        logger.warning("Ignoring unreadable catalog file %s: %s", path, e)
        return None


class CheckpointStore:
    """
    Owns the two artifact paths: the checkpoint written after every finished
    subcategory, and the final catalog it is renamed onto at the end.
    """

    def __init__(self, final_path: Path, checkpoint_path: Path):
        self.final_path = Path(final_path)
        self.checkpoint_path = Path(checkpoint_path)

    def load_previous(self) -> Optional[CatalogSnapshot]:
        return read_snapshot(self.final_path)

    def load_checkpoint(self) -> Optional[CatalogSnapshot]:
        return read_snapshot(self.checkpoint_path)

    def save(self, snapshot: CatalogSnapshot) -> None:
        atomic_write_bytes(self.checkpoint_path, dump_snapshot(snapshot))

    def promote(self, snapshot: CatalogSnapshot, scraped_at: datetime) -> CatalogSnapshot:
        snapshot.scraped_at = scraped_at
        self.save(snapshot)
        self.final_path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self.checkpoint_path, self.final_path)
        return snapshot
