from typing import Literal
from pydantic import BaseModel, Field, ValidationError, field_validator


class SettingsSchema(BaseModel):
    weight_unit: Literal["kg", "lb"] = "kg"
    default_rest_seconds: int = Field(90, ge=0, le=3600)
    rpe_scale: int = 10
    warmup_percentages: list[float] = Field(default_factory=list)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    timezone: str = "UTC"

    @field_validator("warmup_percentages")
    @classmethod
    def _percentages_in_range(cls, value: list[float]) -> list[float]:
        for pct in value:
            if not 0 < pct < 1:
                raise ValueError("warm-up percentages must be between 0 and 1")
        return value


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
