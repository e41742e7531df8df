"""Daily rep assignment persistence.

Records are keyed by assignment id; the (user_id, assigned_date) pair is
unique and checked inside the same locked transaction as the write.
"""

from datetime import date, datetime, timezone
from pathlib import Path

from daily_rep.models.rep import DailyRepAssignment, assignment_key
from daily_rep.storage.collection import ConflictError, JsonCollection, NotFoundError


def _find_key(items: dict[str, dict], key: str) -> str | None:
    for assignment_id, data in items.items():
        if assignment_key(data["user_id"], date.fromisoformat(data["assigned_date"])) == key:
            return assignment_id
    return None


class AssignmentStore:
    def __init__(self, data_dir: Path):
        self._collection = JsonCollection(data_dir / "assignments.json")

    def get(self, assignment_id: str) -> DailyRepAssignment | None:
        data = self._collection.get(assignment_id)
        return DailyRepAssignment.model_validate(data) if data is not None else None

    def get_for_day(self, user_id: str, day: date) -> DailyRepAssignment | None:
        items = self._collection.read()
        assignment_id = _find_key(items, assignment_key(user_id, day))
        if assignment_id is None:
            return None
        return DailyRepAssignment.model_validate(items[assignment_id])

    def list_for_user(self, user_id: str, limit: int | None = None) -> list[DailyRepAssignment]:
        """Assignments for a user, newest date first."""
        assignments = [
            DailyRepAssignment.model_validate(d)
            for d in self._collection.read().values()
            if d["user_id"] == user_id
        ]
        assignments.sort(key=lambda a: a.assigned_date, reverse=True)
        return assignments[:limit] if limit is not None else assignments

    def user_ids_for_day(self, day: date) -> set[str]:
        iso = day.isoformat()
        return {d["user_id"] for d in self._collection.read().values() if d["assigned_date"] == iso}

    def insert(self, assignment: DailyRepAssignment) -> DailyRepAssignment:
        """Insert a new assignment.

        Raises:
            ConflictError: If the user already has an assignment for that date.
        """
        with self._collection.transaction() as items:
            existing = _find_key(items, assignment.key)
            if existing is not None:
                raise ConflictError(
                    f"Assignment already exists for {assignment.user_id} on "
                    f"{assignment.assigned_date.isoformat()}: {existing}"
                )
            items[assignment.id] = assignment.model_dump(mode="json")
        return assignment

    def update(self, assignment_id: str, **fields) -> DailyRepAssignment:
        """Apply field changes to an assignment.

        Raises:
            NotFoundError: If the assignment does not exist.
        """
        with self._collection.transaction() as items:
            data = items.get(assignment_id)
            if data is None:
                raise NotFoundError(f"Assignment not found: {assignment_id}")
            assignment = DailyRepAssignment.model_validate(data)
            for key, value in fields.items():
                setattr(assignment, key, value)
            assignment.updated_at = datetime.now(timezone.utc)
            items[assignment_id] = assignment.model_dump(mode="json")
        return assignment

    def update_for_day(self, user_id: str, day: date, **fields) -> DailyRepAssignment:
        """Apply field changes to the assignment for (user_id, day)."""
        with self._collection.transaction() as items:
            assignment_id = _find_key(items, assignment_key(user_id, day))
            if assignment_id is None:
                raise NotFoundError(f"No assignment for {user_id} on {day.isoformat()}")
            assignment = DailyRepAssignment.model_validate(items[assignment_id])
            for key, value in fields.items():
                setattr(assignment, key, value)
            assignment.updated_at = datetime.now(timezone.utc)
            items[assignment_id] = assignment.model_dump(mode="json")
        return assignment

    def __len__(self) -> int:
        return len(self._collection)
