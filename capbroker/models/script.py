"""Cached script data models."""

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .tool import ParameterSpec, ScriptLanguage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ScriptProvenance(BaseModel):
    """Where a cached script came from."""
    model_config = ConfigDict(extra="ignore")

    generated_by: str = Field(default="unknown", description="'template' or 'generator'")
    original_request: str = Field(default="")
    tags: list[str] = Field(default_factory=list)


class CachedScript(BaseModel):
    """Full cached script record as stored in the script cache.

    Unknown fields are ignored and missing ones defaulted so that records
    written by older or newer versions remain readable.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    script: str
    language: ScriptLanguage = ScriptLanguage.GENERIC
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)
    created: datetime = Field(default_factory=utcnow)
    last_used: datetime = Field(default_factory=utcnow)
    success_count: int = 0
    failure_count: int = 0
    provenance: ScriptProvenance = Field(default_factory=ScriptProvenance)

    @field_validator("created", "last_used")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def total_executions(self) -> int:
        return self.success_count + self.failure_count

    @property
    def success_rate(self) -> float:
        total = self.total_executions
        return self.success_count / total if total > 0 else 0.0

    @property
    def failure_rate(self) -> float:
        total = self.total_executions
        return self.failure_count / total if total > 0 else 0.0

    def to_prompt_string(self) -> str:
        """Format for inclusion in LLM prompts."""
        return (
            f"### {self.name} ({self.language.value})\n"
            f"**Description:** {self.description}\n"
            f"**Executions:** {self.total_executions} ({self.success_rate:.0%} success)\n"
        )
