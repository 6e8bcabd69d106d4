"""
Command Models

Closed set of actuation commands stored in the command queue.
Every consumer dispatches over TurnCommand / BrightnessCommand exhaustively.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError

BRIGHTNESS_MIN = 0
BRIGHTNESS_MAX = 100


class PowerState(str, Enum):
    """Canonical power state token"""
    ON = "on"
    OFF = "off"


class CommandStatus(str, Enum):
    """Command queue entry status"""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


# Statuses that count as an outstanding command for a device
OUTSTANDING_STATUSES = (CommandStatus.PENDING.value, CommandStatus.PROCESSING.value)


def coerce_power_state(value: Any) -> PowerState:
    """Accept 'on'/'off' in any case, or a boolean"""
    if isinstance(value, PowerState):
        return value
    if isinstance(value, bool):
        return PowerState.ON if value else PowerState.OFF
    if isinstance(value, str):
        try:
            return PowerState(value.strip().lower())
        except ValueError:
            pass
    raise ValidationError(f"Invalid power state: {value!r}")


def coerce_brightness(value: Any) -> int:
    """Coerce to an int on the canonical 0-100 scale (clamped)"""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid brightness: {value!r}")
    try:
        brightness = int(float(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid brightness: {value!r}")
    return max(BRIGHTNESS_MIN, min(BRIGHTNESS_MAX, brightness))


class TurnCommand(BaseModel):
    name: Literal["turn"] = "turn"
    value: PowerState

    @field_validator("value", mode="before")
    @classmethod
    def _power_token(cls, value):
        return coerce_power_state(value)


class BrightnessCommand(BaseModel):
    name: Literal["brightness"] = "brightness"
    value: int = Field(ge=BRIGHTNESS_MIN, le=BRIGHTNESS_MAX)

    @field_validator("value", mode="before")
    @classmethod
    def _canonical_scale(cls, value):
        return coerce_brightness(value)


DeviceCommand = Annotated[Union[TurnCommand, BrightnessCommand], Field(discriminator="name")]

_command_adapter = TypeAdapter(DeviceCommand)


def parse_command(payload: Any) -> DeviceCommand:
    """
    Validate a raw {"name": ..., "value": ...} payload

    Raises:
        ValidationError: unknown command name or invalid value
    """
    if not isinstance(payload, dict):
        raise ValidationError("Command payload must be an object with 'name' and 'value'")
    try:
        return _command_adapter.validate_python(payload)
    except ValidationError:
        raise
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid command: {e.errors()[0]['msg']}")


def command_payload(command: DeviceCommand) -> dict:
    """JSON form stored in command_queue.command"""
    return command.model_dump(mode="json")
