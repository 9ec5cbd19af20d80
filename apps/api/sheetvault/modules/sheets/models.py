from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class Sheet(SQLModel, table=True):
    __tablename__ = "sheets"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    template_id: str = Field(foreign_key="templates.id", index=True)  # immutable after create
    name: str
    data_json: str  # free-form; core reads data.crew and data.image

    created_at: str
    updated_at: str


# at most one grant per (sheet, user); never to the sheet's owner
class SheetShare(SQLModel, table=True):
    __tablename__ = "sheet_shares"
    __table_args__ = (UniqueConstraint("sheet_id", "shared_with_user_id", name="uq_sheet_shares_sheet_user"),)

    id: str = Field(primary_key=True)
    sheet_id: str = Field(
        sa_column=Column(Text, ForeignKey("sheets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    shared_with_user_id: str = Field(foreign_key="users.id", index=True)
    created_at: str
