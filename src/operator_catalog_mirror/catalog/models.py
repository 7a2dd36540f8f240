"""Declarative config (file-based catalog) data models."""

from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ParseError


@dataclass
class ChannelEntry:
    """Bundle entry of an olm.channel object."""

    name: str
    replaces: str | None = None
    skips: list[str] | None = None
    skip_range: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChannelEntry":
        return cls(
            name=data.get("name", ""),
            replaces=data.get("replaces"),
            skips=data.get("skips"),
            skip_range=data.get("skipRange"),
        )


@dataclass
class RelatedImage:
    """Image referenced by a bundle."""

    name: str
    image: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelatedImage":
        return cls(name=data.get("name", ""), image=data.get("image", ""))


@dataclass
class DeclarativeConfig:
    """One object of a file-based catalog (olm.package, olm.channel, olm.bundle)."""

    schema: str
    name: str | None = None
    package: str | None = None
    default_channel: str | None = None
    description: str | None = None
    image: str | None = None
    entries: list[ChannelEntry] = field(default_factory=list)
    related_images: list[RelatedImage] = field(default_factory=list)
    properties: list[dict[str, Any]] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Lookup key used by the declarative config map."""
        return f"{self.name or ''}={self.schema}"

    @classmethod
    def from_dict(cls, data: Any) -> "DeclarativeConfig":
        """Build a declarative config from its decoded JSON/YAML form.

        Raises:
            ParseError: If data is not a mapping with a schema field
        """
        if not isinstance(data, dict):
            raise ParseError("Declarative config must be an object")
        schema = data.get("schema")
        if not isinstance(schema, str) or not schema:
            raise ParseError("Declarative config has no schema")

        try:
            return cls(
                schema=schema,
                name=data.get("name"),
                package=data.get("package"),
                default_channel=data.get("defaultChannel"),
                description=data.get("description"),
                image=data.get("image"),
                entries=[
                    ChannelEntry.from_dict(e) for e in data.get("entries") or []
                ],
                related_images=[
                    RelatedImage.from_dict(r) for r in data.get("relatedImages") or []
                ],
                properties=list(data.get("properties") or []),
            )
        except (AttributeError, TypeError) as e:
            raise ParseError(f"Invalid declarative config {schema}: {e}") from e
