from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """User as stored in the directory.

    Field aliases are the stored key names, so a raw directory record can be
    validated directly.
    """

    id: str
    display_name: Optional[str] = Field(default="", alias="first_name")
    last_seen: Optional[int] = None
    selected_model: Optional[str] = Field(default=None, alias="current_model")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Python field name -> stored key, for partial updates
STORE_FIELDS = {
    "id": "id",
    "display_name": "first_name",
    "last_seen": "last_seen",
    "selected_model": "current_model",
}


def to_store_fields(fields: dict) -> dict:
    """Translate a partial update to stored key names, dropping unknown keys."""
    return {STORE_FIELDS[key]: value for key, value in fields.items() if key in STORE_FIELDS}
