from pydantic import BaseModel, field_validator
from typing import Optional


class StudentSchema(BaseModel):
    id: str
    school_id: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True

    @field_validator("full_name")
    @classmethod
    def name_not_blank(cls, v):
        assert v.strip(), "full_name is blank"
        return v.strip()


class InstructorSchema(BaseModel):
    id: str
    school_id: str
    full_name: str
    email: Optional[str] = None
    is_active: bool = True

    @field_validator("full_name")
    @classmethod
    def name_not_blank(cls, v):
        assert v.strip(), "full_name is blank"
        return v.strip()


class VehicleSchema(BaseModel):
    id: str
    school_id: str
    make: str
    license_plate: Optional[str] = None
    transmission: str = "manual"
    is_active: bool = True

    @field_validator("transmission")
    @classmethod
    def known_transmission(cls, v):
        assert v in ("manual", "automatic"), f"Bad transmission: {v}"
        return v
