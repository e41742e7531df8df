"""Candidate selection: catalog reuse or on-demand generation."""

import random
from typing import Protocol

import structlog

from daily_rep.core.generator import RepGenerator
from daily_rep.core.prompts import build_system_prompt, build_user_prompt
from daily_rep.errors import DailyRepError, ErrorKind
from daily_rep.models.profile import SkillLevel, UserProfile
from daily_rep.models.rep import AI_GENERATED_FORMAT, Rep, RepHistory
from daily_rep.storage.reps import FocusAreaStore, RepStore

logger = structlog.get_logger()

MAX_LEVEL_DISTANCE = 1
DEFAULT_ESTIMATED_MINUTES = 10


class SelectionStrategy(Protocol):
    async def select(self, profile: UserProfile, history: RepHistory, rng: random.Random) -> Rep:
        ...


def _require_focus_areas(profile: UserProfile) -> None:
    if not profile.focus_area_ids:
        raise DailyRepError(
            ErrorKind.NO_FOCUS_AREAS,
            "Select at least one focus area in your profile to get daily reps.",
        )


def level_compatible(user_level: SkillLevel, rep_level: SkillLevel | None) -> bool:
    """Reps without a level fit anyone; otherwise allow one step either way."""
    if rep_level is None:
        return True
    return user_level.distance(rep_level) <= MAX_LEVEL_DISTANCE


def filter_candidates(
    profile: UserProfile,
    catalog: list[Rep],
    used_rep_ids: set[str],
) -> tuple[list[Rep], list[Rep]]:
    """Split the catalog into (preferred, fallback) candidates.

    Preferred reps are in a selected focus area, within one level of the user
    and never assigned before. Fallback reps only need the focus area.
    """
    focus = set(profile.focus_area_ids)
    in_focus = [rep for rep in catalog if rep.focus_area_id in focus]
    preferred = [
        rep for rep in in_focus
        if level_compatible(profile.current_level, rep.difficulty_level)
        and rep.id not in used_rep_ids
    ]
    return preferred, in_focus


class CatalogStrategy:
    """Picks a pre-authored rep from the catalog.

    Args:
        reps: Rep store holding the catalog.
    """

    def __init__(self, reps: RepStore):
        self.reps = reps

    async def select(self, profile: UserProfile, history: RepHistory, rng: random.Random) -> Rep:
        _require_focus_areas(profile)
        catalog = self.reps.list_by_focus_areas(profile.focus_area_ids)
        preferred, fallback = filter_candidates(profile, catalog, history.used_rep_ids)

        if preferred:
            # Sort first so the choice depends only on the seed, not store order
            rep = rng.choice(sorted(preferred, key=lambda r: r.id))
            logger.info("catalog_rep_selected", user_id=profile.user_id, rep_id=rep.id)
            return rep

        if fallback:
            rep = rng.choice(sorted(fallback, key=lambda r: r.id))
            logger.info(
                "catalog_fallback_selected",
                user_id=profile.user_id,
                rep_id=rep.id,
                candidates=len(fallback),
            )
            return rep

        raise DailyRepError(
            ErrorKind.NO_ELIGIBLE_REPS,
            "No reps are available for your focus areas. Try selecting more focus areas.",
        )


class GenerativeStrategy:
    """Asks the text generation collaborator for a new rep and stores it.

    Args:
        generator: LLM client.
        reps: Rep store the generated rep is persisted to.
        focus_areas: Focus area lookup for prompt titles and id resolution.
        history_window: Max number of prior reps shown to the model.
        temperature: Sampling temperature.
        system_template: Optional override of the coach system prompt.
        history_instruction: Optional override of the anti-repetition text.
    """

    def __init__(
        self,
        generator: RepGenerator,
        reps: RepStore,
        focus_areas: FocusAreaStore,
        history_window: int = 50,
        temperature: float = 0.9,
        system_template: str | None = None,
        history_instruction: str | None = None,
    ):
        self.generator = generator
        self.reps = reps
        self.focus_areas = focus_areas
        self.history_window = history_window
        self.temperature = temperature
        self.system_template = system_template
        self.history_instruction = history_instruction

    def _focus_titles(self, profile: UserProfile) -> dict[str, str]:
        titles = self.focus_areas.titles_by_id()
        return {fid: titles.get(fid, fid) for fid in profile.focus_area_ids}

    def _resolve_focus_area(self, value: str | None, titles: dict[str, str], rng: random.Random) -> str:
        if value:
            key = value.strip().lower()
            for fid, title in titles.items():
                if key in (title.lower(), fid.lower()):
                    return fid
            logger.warning("generated_focus_area_unknown", focus_area=value)
        # Unknown or missing: attribute to one of the user's own areas
        return rng.choice(sorted(titles))

    async def select(self, profile: UserProfile, history: RepHistory, rng: random.Random) -> Rep:
        _require_focus_areas(profile)
        titles = self._focus_titles(profile)
        title_list = list(titles.values())

        system_prompt = build_system_prompt(title_list, self.system_template)
        user_prompt = build_user_prompt(
            profile,
            title_list,
            history.recent,
            self.history_window,
            self.history_instruction,
        )
        generated = await self.generator.generate(system_prompt, user_prompt, self.temperature)

        rep = Rep(
            title=generated.title.strip()[:100],
            description=generated.description.strip(),
            difficulty_level=SkillLevel.parse(generated.difficulty_level) or profile.current_level,
            estimated_minutes=generated.estimated_minutes or DEFAULT_ESTIMATED_MINUTES,
            focus_area_id=self._resolve_focus_area(generated.focus_area, titles, rng),
            format=AI_GENERATED_FORMAT,
        )
        self.reps.insert(rep)
        logger.info("generated_rep_stored", user_id=profile.user_id, rep_id=rep.id, title=rep.title)
        return rep
