"""Store bundle and catalog seeding."""

from pathlib import Path

import structlog
import yaml

from daily_rep.models.profile import FocusArea
from daily_rep.models.rep import CATALOG_FORMAT, Rep
from daily_rep.storage.assignments import AssignmentStore
from daily_rep.storage.profiles import ProfileStore
from daily_rep.storage.reps import FocusAreaStore, RepStore

logger = structlog.get_logger()


class DataStore:
    """All collections rooted at one data directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.profiles = ProfileStore(data_dir)
        self.reps = RepStore(data_dir)
        self.assignments = AssignmentStore(data_dir)
        self.focus_areas = FocusAreaStore(data_dir)


def load_seed(store: DataStore, seed_path: Path) -> int:
    """Load focus areas and catalog reps from a YAML seed file.

    Reps reference their focus area by ``focus_area`` id. Reps whose id is
    already stored are left untouched.

    Returns:
        Number of reps inserted.
    """
    if not seed_path.exists():
        raise FileNotFoundError(f"Seed file not found: {seed_path}")
    with open(seed_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    for area in data.get("focus_areas", []):
        store.focus_areas.upsert(FocusArea.model_validate(area))

    existing = {rep.id for rep in store.reps.list_all()}
    inserted = 0
    for entry in data.get("reps", []):
        rep = Rep(
            id=entry["id"],
            title=entry["title"],
            description=entry.get("description", ""),
            difficulty_level=entry.get("difficulty_level"),
            estimated_minutes=entry.get("estimated_minutes", 10),
            focus_area_id=entry.get("focus_area"),
            format=entry.get("format", CATALOG_FORMAT),
        )
        if rep.id in existing:
            continue
        store.reps.insert(rep)
        inserted += 1

    logger.info("catalog_seeded", path=str(seed_path), reps_inserted=inserted)
    return inserted
