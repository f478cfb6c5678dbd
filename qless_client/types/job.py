"""
Job-related type definitions decoded from script replies.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def lua_list(value: Any) -> Any:
    """The runtime's JSON encoder writes an empty Lua table as {}."""
    if value is None or value == {}:
        return []
    return value


StringList = Annotated[list[str], BeforeValidator(lua_list)]


class History(BaseModel):
    """
    One entry of a job's history.
    Entries are ordered by occurrence and only ever appended by the runtime.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    when: int = 0
    queue: str = Field(default="", alias="q")
    event: str = Field(default="", alias="what")
    worker: str = ""


class Failure(BaseModel):
    """
    Structured failure detail.
    Present only on failed jobs.
    """

    model_config = ConfigDict(extra="allow")

    group: str
    message: str = ""
    when: int = 0
    worker: str = ""


class TaggedReply(BaseModel):
    """One page of jids carrying a tag, with the total across all pages."""

    total: int = 0
    jobs: StringList = Field(default_factory=list)
