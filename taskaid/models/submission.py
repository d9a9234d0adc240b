from dataclasses import dataclass, field

REQUIRED_FIELDS = (
    "category",
    "title",
    "description",
    "suburb",
    "postcode",
    "name",
    "mobile",
    "email",
    "contact_pref",
    "timing",
)

# Python attribute -> wire/record key
FIELD_KEYS = {
    "category": "category",
    "title": "title",
    "description": "description",
    "suburb": "suburb",
    "postcode": "postcode",
    "address": "address",
    "timing": "timing",
    "budget": "budget",
    "name": "name",
    "mobile": "mobile",
    "email": "email",
    "contact_pref": "contactPref",
}


@dataclass(frozen=True)
class StoredFile:
    stored_name: str
    original_name: str
    size_bytes: int

    def to_record(self) -> dict:
        return {
            "storedName": self.stored_name,
            "originalName": self.original_name,
            "sizeBytes": self.size_bytes,
        }


@dataclass(frozen=True)
class Submission:
    id: str
    created_at: str
    category: str = ""
    title: str = ""
    description: str = ""
    suburb: str = ""
    postcode: str = ""
    address: str = ""
    timing: str = ""
    budget: str = ""
    name: str = ""
    mobile: str = ""
    email: str = ""
    contact_pref: str = ""
    files: tuple[StoredFile, ...] = field(default_factory=tuple)
    user_agent: str = ""
    client_ip: str = ""

    def to_record(self) -> dict:
        """Serializable form, in the key order written to the submission log."""
        record = {"id": self.id, "createdAt": self.created_at}
        for attr, key in FIELD_KEYS.items():
            record[key] = getattr(self, attr)
        record["files"] = [f.to_record() for f in self.files]
        record["userAgent"] = self.user_agent
        record["clientIp"] = self.client_ip
        return record
