from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MeasurementSystem(str, Enum):
    IMPERIAL = "imperial"
    METRIC = "metric"

    @classmethod
    def _missing_(cls, value):
        # Clients send "Metric" / "IMPERIAL" as often as the lowercase form.
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestContext(_CamelModel):
    """Situational context for a single turn. Shapes the system prompt only, never stored."""
    measurement_system: MeasurementSystem = MeasurementSystem.IMPERIAL
    latitude: float = 0.0
    longitude: float = 0.0
    activities: List[str] = Field(default_factory=list)

    @field_validator("activities")
    @classmethod
    def _dedupe_activities(cls, value: List[str]) -> List[str]:
        seen = {}
        for activity in value:
            name = activity.strip()
            if name and name.lower() not in seen:
                seen[name.lower()] = name
        return list(seen.values())

    @property
    def has_location(self) -> bool:
        return self.latitude != 0 and self.longitude != 0


class ChatRequest(_CamelModel):
    user_id: Optional[str] = None
    message: str = Field(..., min_length=1)
    context: Optional[RequestContext] = None
