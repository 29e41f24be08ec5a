"""
Sync request construction and validation.

A request names one entity of a closed set of types and at least one way of
identifying it. Validation happens once, here, before anything is sent or
written.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from services.errors import ValidationError


class EntityType(str, Enum):
    ARTIST = "artist"
    VENUE = "venue"
    SHOW = "show"
    SETLIST = "setlist"
    SONG = "song"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: Any) -> "EntityType":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "Invalid entity type",
                extra={"providedType": value, "validTypes": cls.values()},
            )


class SyncOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    skip_dependencies: Optional[bool] = Field(default=None, alias="skipDependencies")
    force_refresh: Optional[bool] = Field(default=None, alias="forceRefresh")


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    entity_type: EntityType = Field(alias="entityType")
    entity_id: Optional[str] = Field(default=None, alias="entityId")
    ticketmaster_id: Optional[str] = Field(default=None, alias="ticketmasterId")
    spotify_id: Optional[str] = Field(default=None, alias="spotifyId")
    setlist_fm_id: Optional[str] = Field(default=None, alias="setlistFmId")
    # Owning artist, for songs synced outside an artist payload
    artist_id: Optional[uuid.UUID] = Field(default=None, alias="artistId")
    options: SyncOptions = Field(default_factory=SyncOptions)

    @property
    def identifier(self) -> str:
        return self.entity_id or self.ticketmaster_id or self.spotify_id or self.setlist_fm_id

    @property
    def force_refresh(self) -> bool:
        return bool(self.options.force_refresh)

    @property
    def skip_dependencies(self) -> bool:
        return bool(self.options.skip_dependencies)

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload for the sync function, unset fields omitted."""
        payload = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if not payload.get("options"):
            payload["options"] = {}
        return payload

    @classmethod
    def from_payload(cls, body: Any) -> "SyncRequest":
        """Validate an untrusted request body, e.g. from an API route."""
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        options = body.get("options") or {}
        if not isinstance(options, dict):
            raise ValidationError("options must be an object")
        options = dict(options)
        # Flat skipDependencies/forceRefresh are accepted too
        for key in ("skipDependencies", "forceRefresh"):
            if key in body and key not in options:
                options[key] = body[key]

        return build_sync_request(
            entity_type=body.get("entityType"),
            entity_id=body.get("entityId"),
            ticketmaster_id=body.get("ticketmasterId"),
            spotify_id=body.get("spotifyId"),
            setlist_fm_id=body.get("setlistFmId"),
            artist_id=body.get("artistId"),
            skip_dependencies=options.get("skipDependencies"),
            force_refresh=options.get("forceRefresh"),
        )


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_sync_request(
    entity_type: Any,
    entity_id: Any = None,
    ticketmaster_id: Any = None,
    spotify_id: Any = None,
    setlist_fm_id: Any = None,
    artist_id: Any = None,
    skip_dependencies: Optional[bool] = None,
    force_refresh: Optional[bool] = None,
) -> SyncRequest:
    if entity_type is None or entity_type == "":
        raise ValidationError("Missing required field: entityType")
    kind = entity_type if isinstance(entity_type, EntityType) else EntityType.parse(entity_type)

    entity_id = _clean_id(entity_id)
    ticketmaster_id = _clean_id(ticketmaster_id)
    spotify_id = _clean_id(spotify_id)
    setlist_fm_id = _clean_id(setlist_fm_id)

    if kind is EntityType.ARTIST:
        if not (entity_id or ticketmaster_id):
            raise ValidationError("Artist sync requires entityId or ticketmasterId")
    elif not (entity_id or ticketmaster_id or spotify_id or setlist_fm_id):
        raise ValidationError(f"{kind.value.capitalize()} sync requires an identifier")

    try:
        return SyncRequest(
            entity_type=kind,
            entity_id=entity_id,
            ticketmaster_id=ticketmaster_id,
            spotify_id=spotify_id,
            setlist_fm_id=setlist_fm_id,
            artist_id=_clean_id(artist_id),
            options=SyncOptions(skip_dependencies=skip_dependencies, force_refresh=force_refresh),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid sync request: {e.errors()[0]['msg']}")
