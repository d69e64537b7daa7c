"""
Wire format for sections.

Decodes the JSON payload accepted by PUT /sections/{uuid} into a Section
and encodes stored sections for GET responses:

    {
        "uuid": "...",
        "prefLabel": "...",
        "types": ["Thing", "Concept", "Classification", "Section"],
        "alternativeIdentifiers": {
            "TME": ["..."],
            "uuids": ["..."],
            "factsetIdentifier": "...",
            "leiCode": "..."
        }
    }

"types" is informational on input; writes always apply the full ladder.
Null fields decode as empty values, as absent ones do.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..sections import AlternativeIdentifiers, Section


class AlternativeIdentifiersPayload(BaseModel):
    """Alternative identifiers of a section."""

    model_config = ConfigDict(populate_by_name=True)

    tme: list[str] | None = Field(None, alias="TME", description="Legacy taxonomy codes")
    uuids: list[str] | None = Field(None, description="Alias UUIDs")
    factset_identifier: str | None = Field(
        None, alias="factsetIdentifier", description="FactSet code"
    )
    lei_code: str | None = Field(None, alias="leiCode", description="Legal entity identifier")

    def to_identifiers(self) -> AlternativeIdentifiers:
        return AlternativeIdentifiers(
            tme=tuple(self.tme or ()),
            uuids=tuple(self.uuids or ()),
            factset_identifier=self.factset_identifier or "",
            lei_code=self.lei_code or "",
        )

    @classmethod
    def from_identifiers(cls, identifiers: AlternativeIdentifiers) -> AlternativeIdentifiersPayload:
        return cls(
            tme=list(identifiers.tme) or None,
            uuids=list(identifiers.uuids),
            factset_identifier=identifiers.factset_identifier or None,
            lei_code=identifiers.lei_code or None,
        )


class SectionPayload(BaseModel):
    """A section as sent and returned over HTTP."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str = Field(..., description="Section UUID")
    pref_label: str | None = Field("", alias="prefLabel", description="Display name")
    types: list[str] | None = Field(None, description="Classification labels")
    alternative_identifiers: AlternativeIdentifiersPayload | None = Field(
        default_factory=AlternativeIdentifiersPayload, alias="alternativeIdentifiers"
    )

    def to_section(self) -> Section:
        """Decode into a Section; types are ignored, the ladder is fixed."""
        return Section(
            uuid=self.uuid,
            pref_label=self.pref_label or "",
            alternative_identifiers=(
                self.alternative_identifiers or AlternativeIdentifiersPayload()
            ).to_identifiers(),
        )

    @classmethod
    def from_section(cls, section: Section) -> SectionPayload:
        return cls(
            uuid=section.uuid,
            pref_label=section.pref_label,
            types=list(section.types),
            alternative_identifiers=AlternativeIdentifiersPayload.from_identifiers(
                section.alternative_identifiers
            ),
        )


class CountResponse(BaseModel):
    """Number of stored sections."""

    count: int


class HealthResponse(BaseModel):
    """Health check outcome."""

    healthy: bool
    error: str | None = None
