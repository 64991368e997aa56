import json
from datetime import date

from micnotes.kvstore import MemoryKeyValueStore
from micnotes.models import VeterinaryContext
from micnotes.profiles import (
    LEGACY_KEYS,
    PROFILES_KEY,
    DogProfile,
    MedicalRecord,
    Medication,
    OwnerProfile,
    Profiles,
    ProfileStore,
    format_profile_context,
)

TODAY = date(2025, 7, 1)


def _dog(dog_id, name, **kwargs):
    defaults = dict(
        breed="Shiba Inu",
        date_of_birth=date(2021, 3, 15),
        weight=22.5,
        color="Red",
        microchip_number="392000000000001",
        allergies=["chicken"],
    )
    defaults.update(kwargs)
    return DogProfile(id=dog_id, name=name, **defaults)


def test_selected_dogs_only_and_no_blank_purpose():
    profiles = Profiles(dogs=[_dog("a", "Hachi"), _dog("b", "Kuro"), _dog("c", "Shiro")])
    context = VeterinaryContext(selected_dogs=frozenset({"a", "b"}), visit_purpose="  ")

    text = format_profile_context(profiles, context, today=TODAY)

    assert "Hachi" in text and "Kuro" in text
    assert "Shiro" not in text
    assert "purpose" not in text.lower()
    assert "Not specified" not in text


def test_visit_purpose_line_when_given():
    profiles = Profiles(dogs=[_dog("a", "Hachi")])
    context = VeterinaryContext(frozenset({"a"}), "Limping on the left leg")
    text = format_profile_context(profiles, context, today=TODAY)
    assert text.endswith("Visit purpose: Limping on the left leg")


def test_absent_attributes_render_not_specified():
    text = format_profile_context(Profiles(dogs=[DogProfile(id="x", name="Pochi")]), today=TODAY)
    assert "Breed: Not specified" in text
    assert "Weight: Not specified" in text
    assert "Age: Not specified" in text


def test_history_keeps_three_newest_and_active_medications():
    history = [
        MedicalRecord(date=date(2025, month, 1), diagnosis=f"visit-{month}") for month in (1, 5, 3, 2, 4)
    ]
    medications = [
        Medication(name="Apoquel", dosage="16mg", frequency="daily"),
        Medication(name="Old antibiotic", end_date=date(2024, 12, 31)),
    ]
    dog = _dog("a", "Hachi", medical_history=history, current_medications=medications)

    text = format_profile_context(Profiles(dogs=[dog]), today=TODAY)

    assert "visit-5" in text and "visit-4" in text and "visit-3" in text
    assert "visit-2" not in text and "visit-1" not in text
    assert text.index("visit-5") < text.index("visit-4") < text.index("visit-3")
    assert "Apoquel (16mg, daily)" in text
    assert "Old antibiotic" not in text


def test_owner_block_and_empty_profiles():
    assert format_profile_context(Profiles(), today=TODAY) == ""
    owner = OwnerProfile(first_name="Aiko", last_name="Sato", phone="090-0000-0000")
    text = format_profile_context(Profiles(owners=[owner]), today=TODAY)
    assert "Owner 1: Aiko Sato" in text
    assert "Email: Not specified" in text


def test_age_description():
    dog = DogProfile(date_of_birth=date(2025, 1, 20))
    assert dog.age_description(TODAY) == "5 months"
    assert _dog("a", "Hachi").age_description(TODAY) == "4 years"


def test_profiles_round_trip(kv):
    store = ProfileStore(kv)
    store.add_dog(_dog("a", "Hachi", medical_history=[MedicalRecord(date=date(2025, 1, 2), diagnosis="Otitis")]))
    store.add_owner(OwnerProfile(id="o", first_name="Aiko"))

    reloaded = ProfileStore(kv).profiles
    assert reloaded == store.profiles
    assert reloaded.primary_owner.first_name == "Aiko"
    assert reloaded.dog("a").medical_history[0].date == date(2025, 1, 2)


def test_legacy_keys_are_migrated_once():
    kv = MemoryKeyValueStore(
        {
            "dogProfile": json.dumps(
                {
                    "id": "legacy-dog",
                    "name": "Hachi",
                    "breed": "Akita",
                    "age": 3,
                    "microchipNumber": "123",
                    "medicalHistory": [
                        {"date": 740000000.0, "diagnosis": "Sprain", "treatment": "Rest", "veterinarian": "Dr. Mori", "notes": ""}
                    ],
                    "medications": [
                        {"name": "Carprofen", "dosage": "25mg", "frequency": "twice daily", "startDate": 740000000.0, "notes": ""}
                    ],
                }
            ),
            "ownerProfile": json.dumps({"firstName": "Aiko", "lastName": "Sato", "address": {"city": "Osaka"}}),
        }
    )

    profiles = ProfileStore(kv).profiles

    assert profiles.dogs[0].id == "legacy-dog"
    assert profiles.dogs[0].age_years == 3
    assert profiles.dogs[0].current_medications[0].name == "Carprofen"
    assert profiles.owners[0].full_name == "Aiko Sato"
    assert profiles.owners[0].address.city == "Osaka"
    for key in LEGACY_KEYS:
        assert kv.get(key) is None
    assert json.loads(kv.get(PROFILES_KEY))["version"] == 2
    assert ProfileStore(kv).profiles == profiles


def test_multi_dog_key_wins_over_single_dog_key():
    kv = MemoryKeyValueStore(
        {
            "dogProfile": json.dumps({"name": "Old"}),
            "multiDogProfile": json.dumps({"dogs": [{"name": "One"}, {"name": "Two"}]}),
        }
    )
    assert [dog.name for dog in ProfileStore(kv).profiles.dogs] == ["One", "Two"]


def test_reset_removes_everything(kv):
    store = ProfileStore(kv)
    store.add_dog(_dog("a", "Hachi"))
    store.reset()
    assert kv.get(PROFILES_KEY) is None
    assert ProfileStore(kv).profiles == Profiles()


def test_failed_legacy_migration_keeps_old_keys():
    broken_dog = json.dumps({"name": "Hachi", "medicalHistory": [{"diagnosis": "Sprain"}]})
    kv = MemoryKeyValueStore({"dogProfile": broken_dog})

    assert ProfileStore(kv).profiles == Profiles()
    assert kv.get("dogProfile") == broken_dog
    assert kv.get(PROFILES_KEY) is None


def test_wrongly_shaped_profiles_start_empty():
    kv = MemoryKeyValueStore({PROFILES_KEY: "[]"})
    assert ProfileStore(kv).profiles == Profiles()

    kv = MemoryKeyValueStore({"multiOwnerProfile": json.dumps(["Aiko"])})
    assert ProfileStore(kv).profiles == Profiles()
    assert kv.get("multiOwnerProfile") is not None
