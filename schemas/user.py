from datetime import datetime

from pydantic import BaseModel, Field


class UserDTO(BaseModel):
    id: str
    name: str
    email: str
    department: str
    is_active: bool = Field(alias="isActive")
    created_at: datetime = Field(alias="createdAt")

    class Config:
        validate_by_name = True
        from_attributes = True
