"""Data models for live actors and snapshots applied to them."""

from typing import Optional

from pydantic import Field

from snapvault.models.base import ModelBase


class ActorRef(ModelBase):
    """A live actor as reported by the identity provider.

    Attributes:
        slot_index: Current slot index of the actor.
        name: Display name of the actor.
        is_local: Whether this is the privileged/local actor.
        world_id: Optional home world id.
    """

    slot_index: int = Field(..., ge=0, description="Current slot index of the actor.")
    name: str = Field(default="", description="Display name of the actor.")
    is_local: bool = Field(
        default=False, description="Whether this is the privileged/local actor."
    )
    world_id: Optional[int] = Field(default=None, description="Optional home world id.")


class ActiveApplication(ModelBase):
    """Record of a snapshot currently applied to a live actor slot.

    Instances are frozen. Changing one means removing it from the registry
    and inserting an updated copy.

    Attributes:
        slot_index: Slot the snapshot was applied to.
        profile_id: Shape profile handle issued by the apply layer.
        is_local: Whether the slot belongs to the privileged/local actor.
        display_name: Actor name used for slot-independent matching.
        aux_locked: Whether the outfit layer is protected from reapplication.
        has_file_mapping: Whether a file mapping was installed for the slot.
        has_outfit_state: Whether an outfit payload was applied.
    """

    slot_index: int = Field(..., ge=0, description="Slot the snapshot was applied to.")
    profile_id: Optional[str] = Field(
        default=None, description="Shape profile handle issued by the apply layer."
    )
    is_local: bool = Field(
        default=False,
        description="Whether the slot belongs to the privileged/local actor.",
    )
    display_name: str = Field(
        default="", description="Actor name used for slot-independent matching."
    )
    aux_locked: bool = Field(
        default=False,
        description="Whether the outfit layer is protected from reapplication.",
    )
    has_file_mapping: bool = Field(
        default=True,
        description="Whether a file mapping was installed for the slot.",
    )
    has_outfit_state: bool = Field(
        default=True, description="Whether an outfit payload was applied."
    )
