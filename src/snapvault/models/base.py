from pydantic import BaseModel, ConfigDict


class ModelBase(BaseModel):
    """
    Base class for in-memory snapvault value types.

    Enforces strict validation, forbids unknown fields,
    and freezes instances so updates go through model_copy.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        frozen=True,
    )


class PersistedModel(BaseModel):
    """
    Base class for records written to a snapshot directory.

    Unknown fields are ignored on load so files written by newer
    versions stay readable.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
    )


GamePath = str
ContentHash = str
FileMapId = str
FileMap = dict[GamePath, ContentHash]
