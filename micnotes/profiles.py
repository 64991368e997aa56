"""Dog and owner profiles injected into veterinary summaries."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .kvstore import KeyValueStore
from .models import VeterinaryContext

PROFILES_KEY = "profiles"
PROFILES_VERSION = 2
LEGACY_KEYS = ("dogProfile", "multiDogProfile", "ownerProfile", "multiOwnerProfile")
RECENT_HISTORY_LIMIT = 3
NOT_SPECIFIED = "Not specified"
NONE_RECORDED = "None recorded"

_LEGACY_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class MedicalRecord:
    date: date
    diagnosis: str = ""
    treatment: str = ""
    veterinarian: str = ""
    notes: str = ""


@dataclass(slots=True)
class Medication:
    name: str
    dosage: str = ""
    frequency: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prescribed_by: str = ""
    notes: str = ""

    def is_active(self, today: date) -> bool:
        return self.end_date is None or self.end_date >= today


@dataclass(slots=True)
class DogProfile:
    id: str = field(default_factory=_new_id)
    name: str = ""
    breed: str = ""
    date_of_birth: Optional[date] = None
    age_years: Optional[int] = None
    weight: float = 0.0
    color: str = ""
    microchip_number: str = ""
    allergies: List[str] = field(default_factory=list)
    special_needs: str = ""
    notes: str = ""
    current_medications: List[Medication] = field(default_factory=list)
    medical_history: List[MedicalRecord] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or "Unnamed dog"

    def age_description(self, today: date) -> str:
        if self.date_of_birth is not None:
            months = (today.year - self.date_of_birth.year) * 12 + today.month - self.date_of_birth.month
            if today.day < self.date_of_birth.day:
                months -= 1
            months = max(months, 0)
            if months < 12:
                return f"{months} month{'s' if months != 1 else ''}"
            years = months // 12
            return f"{years} year{'s' if years != 1 else ''}"
        if self.age_years:
            return f"{self.age_years} year{'s' if self.age_years != 1 else ''}"
        return NOT_SPECIFIED


@dataclass(slots=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    def one_line(self) -> str:
        return ", ".join(part for part in (self.street, self.city, self.state, self.zip_code, self.country) if part)


@dataclass(slots=True)
class EmergencyContact:
    name: str = ""
    relationship: str = ""
    phone: str = ""
    email: str = ""


@dataclass(slots=True)
class OwnerProfile:
    id: str = field(default_factory=_new_id)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: Address = field(default_factory=Address)
    emergency_contact: EmergencyContact = field(default_factory=EmergencyContact)
    preferred_veterinarian: str = ""
    preferred_clinic: str = ""
    notes: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(slots=True)
class Profiles:
    dogs: List[DogProfile] = field(default_factory=list)
    owners: List[OwnerProfile] = field(default_factory=list)

    @property
    def primary_owner(self) -> Optional[OwnerProfile]:
        return self.owners[0] if self.owners else None

    def dog(self, dog_id: str) -> Optional[DogProfile]:
        return next((dog for dog in self.dogs if dog.id == dog_id), None)


class ProfileStore:
    """Load, migrate and save :class:`Profiles` under a single versioned key."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv
        self.profiles = self.load_with_migration()

    def load_with_migration(self) -> Profiles:
        raw = self.kv.get(PROFILES_KEY)
        if raw is not None:
            try:
                return profiles_from_dict(json.loads(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Discarding unreadable profiles: %s", exc)
                return Profiles()

        legacy = {key: self.kv.get(key) for key in LEGACY_KEYS}
        if not any(value is not None for value in legacy.values()):
            return Profiles()

        profiles = Profiles()
        try:
            if legacy["multiDogProfile"] is not None:
                payload = json.loads(legacy["multiDogProfile"])
                profiles.dogs = [_dog_from_legacy(item) for item in payload.get("dogs", [])]
            elif legacy["dogProfile"] is not None:
                profiles.dogs = [_dog_from_legacy(json.loads(legacy["dogProfile"]))]
            if legacy["multiOwnerProfile"] is not None:
                payload = json.loads(legacy["multiOwnerProfile"])
                profiles.owners = [_owner_from_legacy(item) for item in payload.get("owners", [])]
            elif legacy["ownerProfile"] is not None:
                profiles.owners = [_owner_from_legacy(json.loads(legacy["ownerProfile"]))]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            # Legacy keys are left untouched.
            logger.warning("Legacy profiles could not be migrated: %s", exc)
            return Profiles()

        logger.info(
            "Migrated legacy profiles: %d dog(s), %d owner(s)", len(profiles.dogs), len(profiles.owners)
        )
        self._write(profiles)
        for key, value in legacy.items():
            if value is not None:
                self.kv.delete(key)
        return profiles

    def _write(self, profiles: Profiles) -> None:
        self.kv.set(PROFILES_KEY, json.dumps(profiles_to_dict(profiles), ensure_ascii=False))

    def save(self) -> None:
        self._write(self.profiles)

    def reset(self) -> None:
        self.profiles = Profiles()
        self.kv.delete(PROFILES_KEY)
        for key in LEGACY_KEYS:
            self.kv.delete(key)

    def add_dog(self, dog: DogProfile) -> DogProfile:
        self.profiles.dogs.append(dog)
        self.save()
        return dog

    def remove_dog(self, dog_id: str) -> None:
        self.profiles.dogs = [dog for dog in self.profiles.dogs if dog.id != dog_id]
        self.save()

    def add_owner(self, owner: OwnerProfile) -> OwnerProfile:
        self.profiles.owners.append(owner)
        self.save()
        return owner


def format_profile_context(
    profiles: Profiles,
    context: Optional[VeterinaryContext] = None,
    today: Optional[date] = None,
) -> str:
    """Render profiles as labelled plain text for the summary prompt.

    With a veterinary context only the selected dogs are included and the
    visit purpose is added when it is not blank.
    """

    today = today or date.today()
    dogs: Iterable[DogProfile] = profiles.dogs
    if context is not None:
        dogs = [dog for dog in profiles.dogs if dog.id in context.selected_dogs]

    blocks = [_format_dog(index, dog, today) for index, dog in enumerate(dogs, start=1)]
    blocks.extend(_format_owner(index, owner) for index, owner in enumerate(profiles.owners, start=1))
    if context is not None and context.has_visit_purpose:
        blocks.append(f"Visit purpose: {context.visit_purpose.strip()}")
    return "\n\n".join(blocks)


def _or_default(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return text or NOT_SPECIFIED


def _format_dog(index: int, dog: DogProfile, today: date) -> str:
    lines = [
        f"Dog {index}: {dog.display_name}",
        f"  Breed: {_or_default(dog.breed)}",
        f"  Age: {dog.age_description(today)}",
        f"  Weight: {f'{dog.weight:g} lbs' if dog.weight > 0 else NOT_SPECIFIED}",
        f"  Color: {_or_default(dog.color)}",
        f"  Microchip: {_or_default(dog.microchip_number)}",
        f"  Allergies: {', '.join(dog.allergies) if dog.allergies else NONE_RECORDED}",
    ]
    if dog.special_needs:
        lines.append(f"  Special needs: {dog.special_needs}")

    active = [med for med in dog.current_medications if med.is_active(today)]
    if active:
        lines.append("  Current medications:")
        for med in active:
            detail = ", ".join(part for part in (med.dosage, med.frequency) if part)
            lines.append(f"    - {med.name}" + (f" ({detail})" if detail else ""))
    else:
        lines.append(f"  Current medications: {NONE_RECORDED}")

    recent = sorted(dog.medical_history, key=lambda entry: entry.date, reverse=True)[:RECENT_HISTORY_LIMIT]
    if recent:
        lines.append("  Recent medical history:")
        for entry in recent:
            line = f"    - {entry.date.isoformat()}: {_or_default(entry.diagnosis)}"
            if entry.treatment:
                line += f"; treatment: {entry.treatment}"
            if entry.veterinarian:
                line += f"; veterinarian: {entry.veterinarian}"
            lines.append(line)
    else:
        lines.append(f"  Recent medical history: {NONE_RECORDED}")
    return "\n".join(lines)


def _format_owner(index: int, owner: OwnerProfile) -> str:
    return "\n".join(
        [
            f"Owner {index}: {_or_default(owner.full_name)}",
            f"  Phone: {_or_default(owner.phone)}",
            f"  Email: {_or_default(owner.email)}",
            f"  Address: {_or_default(owner.address.one_line())}",
            f"  Preferred veterinarian: {_or_default(owner.preferred_veterinarian)}",
            f"  Preferred clinic: {_or_default(owner.preferred_clinic)}",
        ]
    )


# -- serialisation -------------------------------------------------------


def _encode(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_encode(item) for item in value]
    return value


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return (_LEGACY_EPOCH + timedelta(seconds=value)).date()
    return date.fromisoformat(str(value)[:10])


def profiles_to_dict(profiles: Profiles) -> Dict[str, Any]:
    return {"version": PROFILES_VERSION, **_encode(asdict(profiles))}


def profiles_from_dict(data: Dict[str, Any]) -> Profiles:
    return Profiles(
        dogs=[_dog_from_dict(item) for item in data.get("dogs", [])],
        owners=[_owner_from_dict(item) for item in data.get("owners", [])],
    )


def _dog_from_dict(data: Dict[str, Any]) -> DogProfile:
    return DogProfile(
        id=str(data.get("id") or _new_id()),
        name=data.get("name", ""),
        breed=data.get("breed", ""),
        date_of_birth=_parse_date(data.get("date_of_birth")),
        age_years=data.get("age_years"),
        weight=float(data.get("weight") or 0.0),
        color=data.get("color", ""),
        microchip_number=data.get("microchip_number", ""),
        allergies=list(data.get("allergies", [])),
        special_needs=data.get("special_needs", ""),
        notes=data.get("notes", ""),
        current_medications=[
            Medication(
                name=item["name"],
                dosage=item.get("dosage", ""),
                frequency=item.get("frequency", ""),
                start_date=_parse_date(item.get("start_date")),
                end_date=_parse_date(item.get("end_date")),
                prescribed_by=item.get("prescribed_by", ""),
                notes=item.get("notes", ""),
            )
            for item in data.get("current_medications", [])
        ],
        medical_history=[
            MedicalRecord(
                date=_parse_date(item["date"]),
                diagnosis=item.get("diagnosis", ""),
                treatment=item.get("treatment", ""),
                veterinarian=item.get("veterinarian", ""),
                notes=item.get("notes", ""),
            )
            for item in data.get("medical_history", [])
        ],
    )


def _owner_from_dict(data: Dict[str, Any]) -> OwnerProfile:
    return OwnerProfile(
        id=str(data.get("id") or _new_id()),
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        email=data.get("email", ""),
        phone=data.get("phone", ""),
        address=Address(**data.get("address", {})),
        emergency_contact=EmergencyContact(**data.get("emergency_contact", {})),
        preferred_veterinarian=data.get("preferred_veterinarian", ""),
        preferred_clinic=data.get("preferred_clinic", ""),
        notes=data.get("notes", ""),
    )


def _dog_from_legacy(data: Dict[str, Any]) -> DogProfile:
    """Map the camelCase shape written by earlier releases."""

    medications = data.get("currentMedications", data.get("medications", []))
    return _dog_from_dict(
        {
            "id": data.get("id"),
            "name": data.get("name", ""),
            "breed": data.get("breed", ""),
            "date_of_birth": data.get("dateOfBirth"),
            "age_years": data.get("age") or None,
            "weight": data.get("weight", 0.0),
            "color": data.get("color", ""),
            "microchip_number": data.get("microchipNumber", ""),
            "allergies": data.get("allergies", []),
            "special_needs": data.get("specialNeeds", ""),
            "notes": data.get("notes", ""),
            "current_medications": [
                {
                    "name": item["name"],
                    "dosage": item.get("dosage", ""),
                    "frequency": item.get("frequency", ""),
                    "start_date": item.get("startDate"),
                    "end_date": item.get("endDate"),
                    "prescribed_by": item.get("prescribedBy", ""),
                    "notes": item.get("notes", ""),
                }
                for item in medications
            ],
            "medical_history": [
                {
                    "date": item["date"],
                    "diagnosis": item.get("diagnosis", ""),
                    "treatment": item.get("treatment", ""),
                    "veterinarian": item.get("veterinarian", ""),
                    "notes": item.get("notes", ""),
                }
                for item in data.get("medicalHistory", [])
            ],
        }
    )


def _owner_from_legacy(data: Dict[str, Any]) -> OwnerProfile:
    address = data.get("address", {})
    contact = data.get("emergencyContact", {})
    return _owner_from_dict(
        {
            "id": data.get("id"),
            "first_name": data.get("firstName", ""),
            "last_name": data.get("lastName", ""),
            "email": data.get("email", ""),
            "phone": data.get("phone", ""),
            "address": {
                "street": address.get("street", ""),
                "city": address.get("city", ""),
                "state": address.get("state", ""),
                "zip_code": address.get("zipCode", ""),
                "country": address.get("country", ""),
            },
            "emergency_contact": {
                "name": contact.get("name", ""),
                "relationship": contact.get("relationship", ""),
                "phone": contact.get("phone", ""),
                "email": contact.get("email", ""),
            },
            "preferred_veterinarian": data.get("preferredVeterinarian", ""),
            "preferred_clinic": data.get("preferredClinic", ""),
            "notes": data.get("notes", ""),
        }
    )
