"""Pydantic request models for the Sandcastle web API."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str | None = None
    sandbox_id: str | None = Field(None, validation_alias=AliasChoices("sandboxId", "sessionId"))


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pr_url: str | None = Field(None, alias="prUrl")
