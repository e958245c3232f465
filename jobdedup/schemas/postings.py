from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PostingIn(BaseModel):
    """Posting record as handed over by the scraping layer."""

    id: str = Field(min_length=1)
    company: str = ""
    title: str = ""
    description: str = ""
    location: str = ""

    model_config = ConfigDict(extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("company", "title", "description", "location", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value
