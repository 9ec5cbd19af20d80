from __future__ import annotations

from sqlmodel import Field, SQLModel


# system-owned; upserted at startup, replaced wholesale on schema.version change
class Template(SQLModel, table=True):
    __tablename__ = "templates"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    schema_json: str  # {version, type: character|crew, defaultData, ...}
    created_at: str
