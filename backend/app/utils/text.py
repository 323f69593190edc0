"""Text normalisation and person canonicalisation helpers."""

from __future__ import annotations

import unicodedata
from typing import Iterable, Optional

from app.schemas.person import PersonProfile

_WHITESPACE = tuple("\u0009\u000a\u000b\u000c\u000d\u0020\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a\u202f\u205f\u3000")


def collapse_whitespace(text: str) -> str:
    """Collapse consecutive whitespace characters into single spaces."""

    if not text:
        return ""

    parts: list[str] = []
    current: list[str] = []
    for char in text:
        if char in _WHITESPACE:
            if current:
                parts.append("".join(current))
                current.clear()
        else:
            current.append(char)
    if current:
        parts.append("".join(current))
    return " ".join(parts)


def normalise_segment(value: object) -> str:
    """Return the NFKC, whitespace-collapsed, lower-cased form of *value*, or ``""``."""

    if value is None:
        return ""
    text = unicodedata.normalize("NFKC", str(value))
    return collapse_whitespace(text).lower()


def _format_years(years: Optional[float]) -> str:
    if years is None:
        return ""
    return f"{years:g} years"


def _join(values: Iterable[object]) -> str:
    return " ".join(segment for segment in (normalise_segment(value) for value in values) if segment)


def skill_segments(person: PersonProfile) -> list[str]:
    return [
        _join((skill.name, skill.proficiency_level, _format_years(skill.years_of_experience)))
        for skill in person.skills
    ]


def technology_segments(person: PersonProfile) -> list[str]:
    return [
        _join((tech.name, tech.proficiency_level, _format_years(tech.years_of_experience)))
        for tech in person.technologies
    ]


def education_segments(person: PersonProfile) -> list[str]:
    return [_join((edu.institution, edu.degree, edu.field_of_study)) for edu in person.education]


def build_person_text(person: PersonProfile, embedding_type: str = "profile") -> str:
    """Build the canonical text embedded for *person*.

    The result depends only on the profile snapshot: the same snapshot always
    produces the same string. ``skills`` and ``technologies`` embedding types
    keep the name plus the matching segments; every other type embeds the full
    profile.
    """

    if embedding_type == "skills":
        segments = [person.name, *skill_segments(person)]
    elif embedding_type == "technologies":
        segments = [person.name, *technology_segments(person)]
    else:
        segments = [
            person.name,
            person.email,
            *skill_segments(person),
            *technology_segments(person),
            *education_segments(person),
            person.notes,
        ]
    return _join(segments)
