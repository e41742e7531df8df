"""Rep catalog and focus area persistence."""

from pathlib import Path

from daily_rep.models.profile import FocusArea
from daily_rep.models.rep import Rep
from daily_rep.storage.collection import ConflictError, JsonCollection


class RepStore:
    def __init__(self, data_dir: Path):
        self._collection = JsonCollection(data_dir / "reps.json")

    def get(self, rep_id: str) -> Rep | None:
        data = self._collection.get(rep_id)
        return Rep.model_validate(data) if data is not None else None

    def get_many(self, rep_ids: list[str]) -> dict[str, Rep]:
        items = self._collection.read()
        return {rid: Rep.model_validate(items[rid]) for rid in rep_ids if rid in items}

    def list_all(self) -> list[Rep]:
        return [Rep.model_validate(d) for d in self._collection.read().values()]

    def list_by_focus_areas(self, focus_area_ids: list[str]) -> list[Rep]:
        wanted = set(focus_area_ids)
        return [rep for rep in self.list_all() if rep.focus_area_id in wanted]

    def insert(self, rep: Rep) -> Rep:
        with self._collection.transaction() as items:
            if rep.id in items:
                raise ConflictError(f"Rep already exists: {rep.id}")
            items[rep.id] = rep.model_dump(mode="json")
        return rep

    def __len__(self) -> int:
        return len(self._collection)


class FocusAreaStore:
    def __init__(self, data_dir: Path):
        self._collection = JsonCollection(data_dir / "focus_areas.json")

    def list_all(self) -> list[FocusArea]:
        areas = [FocusArea.model_validate(d) for d in self._collection.read().values()]
        return sorted(areas, key=lambda a: a.title)

    def get(self, focus_area_id: str) -> FocusArea | None:
        data = self._collection.get(focus_area_id)
        return FocusArea.model_validate(data) if data is not None else None

    def upsert(self, area: FocusArea) -> FocusArea:
        with self._collection.transaction() as items:
            items[area.id] = area.model_dump(mode="json")
        return area

    def titles_by_id(self) -> dict[str, str]:
        return {area.id: area.title for area in self.list_all()}

    def normalize(self, refs: list[str]) -> list[str]:
        """Map a mix of focus area ids and titles to ids, dropping unknown refs."""
        areas = self.list_all()
        by_id = {a.id for a in areas}
        by_title = {a.title.lower(): a.id for a in areas}
        ids: list[str] = []
        for ref in refs:
            resolved = ref if ref in by_id else by_title.get(ref.strip().lower())
            if resolved and resolved not in ids:
                ids.append(resolved)
        return ids
