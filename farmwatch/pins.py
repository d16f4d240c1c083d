from collections.abc import Iterable
from dataclasses import dataclass, replace

from .models import UserProfile

DEFAULT_POSITION = 50.0


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


@dataclass(frozen=True)
class MapPin:
    """A sensor pole drawn on a farm map, positioned in percent of the map's width and height."""

    uid: str
    place_name: str
    pole_number: int
    x: float = DEFAULT_POSITION
    y: float = DEFAULT_POSITION

    @property
    def id(self) -> str:
        return f"{self.uid}_{self.place_name}_{self.pole_number}"

    def moved_to(self, x: float, y: float) -> "MapPin":
        return replace(self, x=clamp_percent(x), y=clamp_percent(y))


def pins_for_user(user: UserProfile) -> list[MapPin]:
    pins: list[MapPin] = []
    for n in range(1, max(0, user.poles) + 1):
        x = user.coordinate("x", n)
        y = user.coordinate("y", n)
        pins.append(
            MapPin(
                uid=user.uid,
                place_name=user.placeName,
                pole_number=n,
                x=clamp_percent(x) if x is not None else DEFAULT_POSITION,
                y=clamp_percent(y) if y is not None else DEFAULT_POSITION,
            )
        )
    return pins


def pins_from_users(users: Iterable[UserProfile]) -> list[MapPin]:
    pins: list[MapPin] = []
    for user in users:
        pins.extend(pins_for_user(user))
    return pins
