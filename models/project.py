from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    field_validator,
    model_serializer,
)

# Metadata keys with a typed home; anything else goes to ProjectMetadata.extensions
KNOWN_METADATA_KEYS = {"description", "tags", "isPublic", "is_public"}

FileMap = Dict[str, StrictStr]


class ProjectMetadata(BaseModel):
    """
    Descriptive metadata attached to a project.

    ``description``, ``tags`` and ``is_public`` are typed. Any other key a
    caller sends is kept verbatim in ``extensions`` and written back next to
    the known keys when the metadata is serialised.
    """

    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    tags: List[StrictStr] = Field(default_factory=list)
    is_public: bool = Field(default=False, alias="isPublic")
    extensions: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, tags: List[str]) -> List[str]:
        # Keep first occurrence order
        return list(dict.fromkeys(tags))

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> "ProjectMetadata":
        """Build metadata from a flat JSON object, filling defaults for missing or null known keys"""
        if data is None:
            return cls()
        if isinstance(data, ProjectMetadata):
            return data.model_copy(deep=True)
        if not isinstance(data, dict):
            raise TypeError("metadata must be an object")

        known: Dict[str, Any] = {}
        extensions: Dict[str, Any] = {}
        for key, value in data.items():
            if key in KNOWN_METADATA_KEYS:
                if value is not None:
                    known["is_public" if key == "isPublic" else key] = value
            else:
                extensions[key] = value
        return cls(extensions=extensions, **known)

    @model_serializer
    def serialize_flat(self) -> Dict[str, Any]:
        data = dict(self.extensions)
        data["description"] = self.description
        data["tags"] = list(self.tags)
        data["isPublic"] = self.is_public
        return data


def _coerce_metadata(value: Any) -> Any:
    if value is None or isinstance(value, (dict, ProjectMetadata)):
        return ProjectMetadata.from_wire(value)
    # Let pydantic report the type error
    return value


class ProjectSummary(BaseModel):
    """Project view without file contents, used by list operations"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_from_wire(cls, value: Any) -> Any:
        return _coerce_metadata(value)

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Project(ProjectSummary):
    files: FileMap = Field(default_factory=dict)

    def summary(self) -> ProjectSummary:
        return ProjectSummary(
            id=self.id,
            name=self.name,
            created_at=self.created_at,
            updated_at=self.updated_at,
            metadata=self.metadata.model_copy(deep=True),
        )


# Request models

class ProjectCreate(BaseModel):
    name: Optional[str] = None
    files: FileMap = Field(default_factory=dict)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)

    @field_validator("files", mode="before")
    @classmethod
    def files_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_from_wire(cls, value: Any) -> Any:
        return _coerce_metadata(value)


class ProjectUpdate(BaseModel):
    """Partial update; ``None`` means leave the field untouched"""

    name: Optional[str] = None
    files: Optional[FileMap] = None
    metadata: Optional[ProjectMetadata] = None

    @field_validator("name")
    @classmethod
    def blank_name_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_from_wire(cls, value: Any) -> Any:
        if value is None:
            return None
        return _coerce_metadata(value)


class ProjectFiles(BaseModel):
    files: FileMap
