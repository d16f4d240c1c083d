from dataclasses import dataclass
from enum import Enum
from typing import Final

TIMESTAMP_KEY: Final[str] = "TimeStamp"


class ChartGroup(Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    NUTRIENTS = "nutrients"
    PH = "ph"
    SALINITY = "salinity"
    OTHERS = "others"


@dataclass(frozen=True)
class Metric:
    """A sensor measurement as it appears in the feed.

    `key` is the column name the spreadsheet exporter writes; `name` is the
    identifier used in code.
    """

    name: str
    key: str
    label: str
    unit: str
    group: ChartGroup
    color: str
    gauge_max: float = 100.0


AIR_TEMPERATURE = Metric("air_temperature", "อุณหภูมิ_c", "Temperature", "°C", ChartGroup.TEMPERATURE, "#facc15")
SOIL_TEMPERATURE = Metric("soil_temperature", "อุณหภูมิดิน_c", "Soil temperature", "°C", ChartGroup.TEMPERATURE, "#22d3ee")
AIR_HUMIDITY = Metric("air_humidity", "ความชื้น_เปอร์เซ็นต์", "Humidity", "%", ChartGroup.HUMIDITY, "#3b82f6")
SOIL_HUMIDITY = Metric("soil_humidity", "ความชื้นดิน_เปอร์เซ็นต์", "Soil humidity", "%", ChartGroup.HUMIDITY, "#8b5cf6")
NITROGEN = Metric("nitrogen", "ไนโตรเจน_เปอร์เซ็นต์", "Nitrogen", "%", ChartGroup.NUTRIENTS, "#84cc16")
PHOSPHORUS = Metric("phosphorus", "ฟอสฟอรัส_เปอร์เซ็นต์", "Phosphorus", "%", ChartGroup.NUTRIENTS, "#eab308")
POTASSIUM = Metric("potassium", "โพแทสเซียม_เปอร์เซ็นต์", "Potassium", "%", ChartGroup.NUTRIENTS, "#f97316")
PH = Metric("ph", "PH", "pH", "", ChartGroup.PH, "#22c55e", gauge_max=14.0)
SALINITY = Metric("salinity", "ความเค็ม_เปอร์เซ็นต์", "Salinity (EC)", "%", ChartGroup.SALINITY, "#06b6d4")
LIGHT = Metric("light", "ความเข้มแสง_lux", "Light", "lux", ChartGroup.OTHERS, "#f59e0b", gauge_max=100_000.0)
PRESSURE = Metric("pressure", "แรงดัน_hPa", "Pressure", "hPa", ChartGroup.OTHERS, "#6366f1", gauge_max=1_100.0)
WIND_SPEED = Metric("wind_speed", "ความเร็วลม_กิโลเมตรต่อชั่วโมง", "Wind", "km/h", ChartGroup.OTHERS, "#ef4444")
FLOAT_SWITCH = Metric("float_switch", "ลูกลอย", "Float switch", "", ChartGroup.OTHERS, "#6366f1", gauge_max=1.0)

ALL_METRICS: Final[tuple[Metric, ...]] = (
    AIR_TEMPERATURE,
    SOIL_TEMPERATURE,
    AIR_HUMIDITY,
    SOIL_HUMIDITY,
    NITROGEN,
    PHOSPHORUS,
    POTASSIUM,
    PH,
    SALINITY,
    LIGHT,
    PRESSURE,
    WIND_SPEED,
    FLOAT_SWITCH,
)

# Float switch is an on/off indicator and is not charted as a series
CHARTED_METRICS: Final[tuple[Metric, ...]] = tuple(m for m in ALL_METRICS if m is not FLOAT_SWITCH)

GROUP_TITLES: Final[dict[ChartGroup, str]] = {
    ChartGroup.TEMPERATURE: "Temperature",
    ChartGroup.HUMIDITY: "Humidity",
    ChartGroup.NUTRIENTS: "Soil nutrients (NPK)",
    ChartGroup.PH: "pH",
    ChartGroup.SALINITY: "Salinity",
    ChartGroup.OTHERS: "Light, pressure and wind",
}


def metrics_in_group(group: ChartGroup) -> list[Metric]:
    return [m for m in CHARTED_METRICS if m.group == group]
