"""Profile model for the RevealMatch service."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from revealmatch.utils.errors import ValidationError
from revealmatch.utils.geo import is_valid_coordinates


class Gender(str, Enum):
    """
    Gender enumeration.

    Used both for a profile's own gender and for the gender it is looking for.
    """

    MALE = "male"
    FEMALE = "female"


class CompatibilityAnswers(BaseModel):
    """
    The four fixed compatibility answers.

    Each field is an optional boolean; an unanswered question is None and
    never counts as agreement. Loosely typed inputs ("yes", "false", 1) are
    coerced once here, so scoring only ever compares booleans.
    """

    model_config = ConfigDict(frozen=True)

    smoker: Optional[bool] = None
    serious_relationship: Optional[bool] = None
    morning_person: Optional[bool] = None
    prefers_city: Optional[bool] = None


class Profile(BaseModel):
    """
    Profile model.

    A user's matchmaking-relevant attributes. The profile record is owned by
    the profile store; the engine reads it and only ever changes the
    reservation flag.
    """

    id: str = Field(..., description="Unique user ID")
    first_name: str = ""
    bio: Optional[str] = None
    photo_path: Optional[str] = None
    gender: Gender
    looking_for: Gender
    age: Optional[int] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    max_distance_km: Optional[float] = None
    answers: CompatibilityAnswers = Field(default_factory=CompatibilityAnswers)
    in_conversation: bool = False
    reserved_at: Optional[datetime] = None
    is_blocked: bool = False
    credits: int = 0
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("age", "min_age", "max_age")
    @classmethod
    def validate_age_range(cls, v: Optional[int], info: ValidationInfo) -> Optional[int]:
        """
        Validate ages and age bounds.

        Ages must be within 18-99, and max_age may not be lower than min_age.
        """
        if v is not None and (v < 18 or v > 99):
            raise ValidationError("Age must be between 18 and 99")

        if info.field_name == "max_age" and v is not None:
            min_age = info.data.get("min_age")
            if min_age is not None and min_age > v:
                raise ValidationError("min_age must be less than or equal to max_age")

        return v

    @field_validator("max_distance_km")
    @classmethod
    def validate_distance(cls, v: Optional[float]) -> Optional[float]:
        """Ensure the search radius is positive."""
        if v is not None and v <= 0:
            raise ValidationError("Search radius must be positive")
        return v

    @property
    def has_coordinates(self) -> bool:
        """True when the profile carries a usable geocoordinate."""
        return is_valid_coordinates(self.latitude, self.longitude)


class CandidateFilter(BaseModel):
    """
    Constraints for the candidate pool query.

    All fields describe the candidate: `gender` is the requester's
    `looking_for` and `looking_for` is the requester's own gender.
    """

    gender: Gender
    looking_for: Gender
    min_age: int
    max_age: int
    exclude_ids: List[str] = Field(default_factory=list)
