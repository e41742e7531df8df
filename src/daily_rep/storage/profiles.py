"""User profile persistence."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from daily_rep.models.profile import UserProfile
from daily_rep.storage.collection import JsonCollection, NotFoundError


class ProfileStore:
    def __init__(self, data_dir: Path):
        self._collection = JsonCollection(data_dir / "profiles.json")

    def get(self, user_id: str) -> UserProfile | None:
        data = self._collection.get(user_id)
        return UserProfile.model_validate(data) if data is not None else None

    def list_all(self) -> list[UserProfile]:
        return [UserProfile.model_validate(d) for d in self._collection.read().values()]

    def save(self, profile: UserProfile) -> UserProfile:
        profile.updated_at = datetime.now(timezone.utc)
        with self._collection.transaction() as items:
            items[profile.user_id] = profile.model_dump(mode="json")
        return profile

    def update(self, user_id: str, **fields) -> UserProfile:
        """Apply field changes to an existing profile atomically.

        Raises:
            NotFoundError: If the profile does not exist.
        """
        return self.update_with(user_id, lambda _: fields)

    def update_with(self, user_id: str, apply: Callable[[UserProfile], dict]) -> UserProfile:
        """Apply the changes ``apply`` derives from the stored profile, under one lock.

        ``apply`` sees the profile as it is on disk at write time and may
        raise to abort without writing.

        Raises:
            NotFoundError: If the profile does not exist.
        """
        with self._collection.transaction() as items:
            data = items.get(user_id)
            if data is None:
                raise NotFoundError(f"Profile not found: {user_id}")
            profile = UserProfile.model_validate(data)
            for key, value in apply(profile).items():
                setattr(profile, key, value)
            profile.updated_at = datetime.now(timezone.utc)
            items[user_id] = profile.model_dump(mode="json")
        return profile
