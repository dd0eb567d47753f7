"""Growth Coach — CRM data models."""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class Contact:
    """One HubSpot contact record, as returned by /crm/v3/objects/contacts."""
    id: str
    properties: Mapping[str, Optional[str]] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    archived: bool = False

    def __post_init__(self):
        # Read-only view so a fetched contact can't be edited in place
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @classmethod
    def from_api(cls, record: dict) -> "Contact":
        return cls(
            id=str(record.get("id", "")),
            properties=record.get("properties") or {},
            created_at=record.get("createdAt"),
            updated_at=record.get("updatedAt"),
            archived=bool(record.get("archived", False)),
        )

    def to_dict(self) -> dict:
        """Serialize back to HubSpot's wire shape."""
        return {
            "id": self.id,
            "properties": dict(self.properties),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "archived": self.archived,
        }

    def get(self, name: str) -> Optional[str]:
        return self.properties.get(name)

    @property
    def full_name(self) -> str:
        first = self.properties.get("firstname") or ""
        last = self.properties.get("lastname") or ""
        return f"{first} {last}".strip()

    @property
    def lifecycle_stage(self) -> Optional[str]:
        return self.properties.get("lifecyclestage")

    @property
    def lead_status(self) -> Optional[str]:
        return self.properties.get("hs_lead_status")
