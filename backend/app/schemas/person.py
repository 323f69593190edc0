"""Pydantic records for the person profiles read from the upstream directory.

Classes:
    PersonSkill, PersonTechnology, Education: Related records attached to a profile.
    PersonProfile: A person with all relations needed for embedding and analysis.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PersonSkill(CamelModel):
    name: str
    proficiency_level: Optional[str] = None
    years_of_experience: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_upstream_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "name" not in data and "skillName" in data:
            data = {**data, "name": data["skillName"]}
        return data


class PersonTechnology(CamelModel):
    name: str
    proficiency_level: Optional[str] = None
    years_of_experience: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_upstream_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "name" not in data and "technologyName" in data:
            data = {**data, "name": data["technologyName"]}
        return data


class Education(CamelModel):
    institution: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None


class PersonProfile(CamelModel):
    id: UUID
    name: str
    email: str
    skills: list[PersonSkill] = Field(default_factory=list)
    technologies: list[PersonTechnology] = Field(default_factory=list)
    education: list[Education] = Field(default_factory=list)
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _compose_name(cls, data: Any) -> Any:
        # Upstream payloads carry firstName/lastName rather than a single name.
        if isinstance(data, dict) and not data.get("name"):
            first = data.get("firstName") or data.get("first_name") or ""
            last = data.get("lastName") or data.get("last_name") or ""
            full = data.get("fullName") or f"{first} {last}".strip()
            if full:
                data = {**data, "name": full}
        return data

    @property
    def skill_names(self) -> list[str]:
        return [skill.name for skill in self.skills]

    @property
    def technology_names(self) -> list[str]:
        return [technology.name for technology in self.technologies]
