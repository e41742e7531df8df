"""Prompt construction for generated daily reps."""

from functools import lru_cache

from daily_rep.config import load_generation_prompts
from daily_rep.models.profile import UserProfile
from daily_rep.models.rep import Rep

DEFAULT_SYSTEM_PROMPT = """\
You are a world-class personal development coach creating daily "reps" \
(actionable challenges) for users.

Your mission is to create ONE specific, actionable daily rep that will genuinely \
improve this person's life in one of their focus areas.

CRITICAL REQUIREMENTS:
1. The rep MUST be doable within the user's preferred time duration
2. It must be HIGHLY SPECIFIC and ACTIONABLE (not generic advice)
3. It should feel personalized to their unique situation (age, job, life stage, goals)
4. It should be challenging but achievable
5. It must create real, measurable progress toward their goals

FORMAT YOUR RESPONSE AS JSON:
{{
  "title": "Clear, actionable title (max 100 chars)",
  "description": "Detailed instructions on exactly what to do and why it matters (2-3 paragraphs)",
  "difficulty_level": "Beginner|Intermediate|Advanced|Pro",
  "estimated_minutes": <number in minutes>,
  "focus_area": "One of: {focus_areas}"
}}
"""

DEFAULT_HISTORY_INSTRUCTION = """\
The user has already received the reps listed below. Do NOT repeat any of them. \
Avoid their themes, their main verbs and their action categories; pick a \
clearly different kind of activity.
"""

DEFAULT_FOCUS_AREAS = "Health, Career, Relationships, Learning"


@lru_cache(maxsize=1)
def _templates() -> dict:
    try:
        return load_generation_prompts()
    except FileNotFoundError:
        return {}


def build_system_prompt(focus_area_titles: list[str], template: str | None = None) -> str:
    template = template or _templates().get("system_prompt") or DEFAULT_SYSTEM_PROMPT
    return template.format(focus_areas=", ".join(focus_area_titles) or DEFAULT_FOCUS_AREAS)


def format_profile(profile: UserProfile, focus_area_titles: list[str]) -> str:
    """Render the profile attributes the coach prompt personalizes on."""
    lines = [
        "User Profile:",
        f"- Name: {profile.full_name or 'Not specified'}",
        f"- Age: {profile.age or 'Not specified'}",
        f"- Life Stage: {profile.life_stage or 'Not specified'}",
        f"- Job Title: {profile.job_title or 'Not specified'}",
        f"- Current Level: {profile.current_level.value}",
        f"- Focus Areas: {', '.join(focus_area_titles) or 'General development'}",
        f"- Goals: {profile.goals or 'Personal growth and improvement'}",
        f"- Preferred Rep Duration: {profile.rep_style}",
    ]
    return "\n".join(lines)


def format_history(recent: list[Rep], window: int) -> str:
    """List the most recent reps, newest first, capped at ``window`` entries."""
    if window <= 0 or not recent:
        return ""
    lines = []
    for i, rep in enumerate(recent[:window], start=1):
        description = " ".join(rep.description.split())
        if len(description) > 160:
            description = description[:157] + "..."
        lines.append(f"{i}. {rep.title} - {description}" if description else f"{i}. {rep.title}")
    return "\n".join(lines)


def build_user_prompt(
    profile: UserProfile,
    focus_area_titles: list[str],
    recent: list[Rep],
    window: int,
    history_instruction: str | None = None,
) -> str:
    parts = [
        "Create a personalized daily rep for this user:",
        format_profile(profile, focus_area_titles),
    ]
    history = format_history(recent, window)
    if history:
        instruction = (
            history_instruction
            or _templates().get("history_instruction")
            or DEFAULT_HISTORY_INSTRUCTION
        )
        parts.append(f"{instruction.strip()}\n\nPrevious reps:\n{history}")
    return "\n\n".join(parts)
