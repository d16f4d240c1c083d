from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from .timeseries import TimestampFormat

ROLE_USER: Final[str] = "user"
ROLE_ADMIN: Final[str] = "admin"

Axis = Literal["x", "y"]


def coordinate_field(axis: Axis, place_name: str, pole_number: int) -> str:
    return f"coordinate_{axis}_{place_name}_{pole_number}"


class UserProfile(BaseModel):
    """A farmer or administrator record from the users table.

    Pole coordinates are stored as flat extra attributes named by
    `coordinate_field`, so unknown attributes are kept.
    """

    model_config = ConfigDict(extra="allow")

    uid: str
    status: str = ROLE_USER
    firstName: str = ""
    lastName: str = ""
    email: str = ""
    placeNo: str = ""
    placeName: str = ""
    poles: int = 0
    googleSheet: str = ""
    googleSheetURL_AI: str = ""
    map: str = ""
    timestampFormat: TimestampFormat = TimestampFormat.AUTO

    @field_validator("placeNo", mode="before")
    @classmethod
    def _place_no_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("poles", mode="before")
    @classmethod
    def _poles_default(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @property
    def is_admin(self) -> bool:
        return self.status == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        name = f"{self.firstName} {self.lastName}".strip()
        return name or self.email or self.uid

    def coordinate(self, axis: Axis, pole_number: int) -> float | None:
        extra = self.model_extra or {}
        value = extra.get(coordinate_field(axis, self.placeName, pole_number))
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
