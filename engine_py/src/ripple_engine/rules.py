"""
Room settings and validation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import CARD_DEPTHS, DEFAULT_TOTAL_ROUNDS, INITIAL_CARDS_PER_PLAYER, MODE_IRL


class RoomSettings(BaseModel):
    """Configuration for a room's rounds."""

    game_mode: Literal["irl", "remote"] = Field(
        default=MODE_IRL,
        description="irl rotates a single active speaker, remote lets everyone review at once"
    )
    card_depth: Optional[int] = Field(
        default=None,
        description="Only deal cards of this depth (None = any depth)"
    )
    cards_per_player: int = Field(
        default=INITIAL_CARDS_PER_PLAYER,
        ge=1,
        le=10,
        description="Number of cards dealt to each player per round"
    )
    total_rounds: int = Field(
        default=DEFAULT_TOTAL_ROUNDS,
        ge=1,
        le=20,
        description="Planned number of rounds"
    )
    allow_exchanges: bool = Field(
        default=True,
        description="Whether players may propose card exchanges"
    )
    allow_ripples: bool = Field(
        default=True,
        description="Whether listeners may ripple-mark cards"
    )
    is_exchange: bool = Field(
        default=False,
        description="Set while the current round is an exchange round"
    )

    @field_validator('card_depth')
    @classmethod
    def validate_card_depth(cls, v):
        """Validate the depth filter is a known depth."""
        if v is not None and v not in CARD_DEPTHS:
            raise ValueError(f'card_depth ({v}) must be one of {CARD_DEPTHS} or None')
        return v

    @property
    def is_remote(self) -> bool:
        return self.game_mode == "remote"


# Default configuration instance
default_settings = RoomSettings()


def create_settings(**overrides) -> RoomSettings:
    """Create RoomSettings with optional overrides."""
    config_dict = default_settings.model_dump()
    config_dict.update(overrides)
    return RoomSettings(**config_dict)


def merge_settings(current: RoomSettings, updates: dict) -> RoomSettings:
    """Apply partial setting updates on top of the current settings."""
    config_dict = current.model_dump()
    config_dict.update({key: value for key, value in updates.items() if key in RoomSettings.model_fields})
    return RoomSettings(**config_dict)
