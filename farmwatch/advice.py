from enum import Enum
from typing import Final

from aws_lambda_powertools import Logger
from pydantic import BaseModel, ConfigDict, ValidationError

from .feed import FeedClient, FeedError

logger = Logger(service="farmwatch")


class Nutrient(Enum):
    EC = "EC"
    N = "N"
    P = "P"
    K = "K"


# Level values as written by the soil-analysis sheet
LEVEL_HIGH: Final[str] = "มาก"
LEVEL_NORMAL: Final[str] = "ปกติ"
LEVEL_LOW: Final[str] = "น้อย"

LEVEL_LABELS: Final[dict[str, str]] = {LEVEL_HIGH: "High", LEVEL_NORMAL: "Normal", LEVEL_LOW: "Low"}

NUTRIENT_TITLES: Final[dict[Nutrient, str]] = {
    Nutrient.EC: "Salinity (EC)",
    Nutrient.N: "Nitrogen (N)",
    Nutrient.P: "Phosphorus (P)",
    Nutrient.K: "Potassium (K)",
}

_ADVICE: Final[dict[Nutrient, dict[str, str]]] = {
    Nutrient.EC: {
        LEVEL_HIGH: "Apply organic fertiliser, manure or compost",
        LEVEL_NORMAL: "Salinity is normal",
        LEVEL_LOW: "Add more fertiliser",
    },
    Nutrient.N: {
        LEVEL_LOW: "Add more fertiliser",
        LEVEL_NORMAL: "Nitrogen is normal",
        LEVEL_HIGH: "Mulch with dry rice straw, rice husk or ground corn cobs",
    },
    Nutrient.P: {
        LEVEL_LOW: "Add more fertiliser",
        LEVEL_NORMAL: "Phosphorus is normal",
        LEVEL_HIGH: "Apply dolomite lime",
    },
    Nutrient.K: {
        LEVEL_LOW: "Add more fertiliser",
        LEVEL_NORMAL: "Potassium is normal",
        LEVEL_HIGH: "Apply biochar",
    },
}

LEVEL_COLORS: Final[dict[str, str]] = {LEVEL_HIGH: "red", LEVEL_NORMAL: "green", LEVEL_LOW: "orange"}


class SoilAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    TimeStamp: str = ""
    resultEC: str = ""
    resultN: str = ""
    resultP: str = ""
    resultK: str = ""

    def level(self, nutrient: Nutrient) -> str:
        return str(getattr(self, f"result{nutrient.value}")).strip()


def advice_for(nutrient: Nutrient, level: str) -> str:
    """Fertiliser advice for a nutrient level; empty for unknown levels."""
    return _ADVICE[nutrient].get(level.strip(), "")


def level_label(level: str) -> str:
    return LEVEL_LABELS.get(level.strip(), level or "—")


def level_color(level: str) -> str:
    return LEVEL_COLORS.get(level.strip(), "gray")


def fetch_latest_analysis(client: FeedClient, url: str | None) -> SoilAnalysis | None:
    """Latest soil-analysis row, or None when the farm has none or the feed fails.

    The analysis panel is optional, so failures are logged and not raised.
    """
    if not url:
        return None
    try:
        rows = client.fetch_rows(url)
    except FeedError as e:
        logger.warning("soil_analysis_unavailable", error=str(e))
        return None
    try:
        return SoilAnalysis.model_validate({k: "" if v is None else str(v) for k, v in rows[-1].items()})
    except ValidationError:
        logger.warning("soil_analysis_invalid")
        return None
