from __future__ import annotations

from sqlmodel import Field, SQLModel


# username is stored trimmed + lower-cased
class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    username: str = Field(unique=True, index=True)
    created_at: str
