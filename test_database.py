import pytest

from database import Database, DatabaseError, DuplicateProtocolError, PatientNotFoundError


def make_patient(protocol_number, **overrides):
    patient = {
        "protocol_number": protocol_number,
        "name": f"Patient {protocol_number}",
        "gender": "male",
        "date_of_birth": "1970-04-12",
        "admission_date": "2024-03-01",
        "discharge_date": None,
    }
    patient.update(overrides)
    return patient


def test_schema_created_on_first_connect(tmp_path):
    db_path = tmp_path / "fresh.db"
    database = Database(str(db_path))
    database.connect()
    try:
        assert db_path.exists()
        assert database.count_patients() == 0
        assert database.count_icd_codes() == 0
    finally:
        database.close()


def test_create_patient_stores_icd_codes(db):
    patient_id = db.create_patient(
        make_patient("A-1"),
        [{"code": "J18.9", "description": "Pneumonia"}, {"code": "I10"}]
    )

    patients = db.get_patients()
    assert len(patients) == 1
    assert patients[0]["id"] == patient_id
    assert patients[0]["protocol_number"] == "A-1"
    assert patients[0]["discharge_date"] is None
    assert patients[0]["created_at"]
    assert patients[0]["icd_codes"] == ["J18.9", "I10"]
    assert db.count_icd_codes(patient_id) == 2


def test_duplicate_protocol_number_rejected(db):
    db.create_patient(make_patient("A-1"), [{"code": "I10"}])

    with pytest.raises(DuplicateProtocolError):
        db.create_patient(make_patient("A-1", name="Someone Else"), [{"code": "E11.9"}])

    assert db.count_patients() == 1
    assert db.count_icd_codes() == 1


def test_failed_icd_insert_rolls_back_patient(db):
    with pytest.raises(DatabaseError) as excinfo:
        db.create_patient(make_patient("A-2"), [{"code": "I10"}, {"code": None}])

    assert not isinstance(excinfo.value, DuplicateProtocolError)
    assert db.count_patients() == 0
    assert db.count_icd_codes() == 0


def test_patients_ordered_most_recent_first(db):
    first = db.create_patient(make_patient("A-1"), [{"code": "I10"}])
    second = db.create_patient(make_patient("A-2"), [{"code": "I10"}])

    assert [p["id"] for p in db.get_patients()] == [second, first]


def test_ids_are_monotonic(db):
    first = db.create_patient(make_patient("A-1"), [{"code": "I10"}])
    db.delete_patient("A-1")
    second = db.create_patient(make_patient("A-1"), [{"code": "I10"}])

    assert second > first


def test_delete_cascades_to_icd_codes(db):
    keep = db.create_patient(make_patient("A-1"), [{"code": "I10"}])
    db.create_patient(make_patient("A-2"), [{"code": "J18.9"}, {"code": "E11.9"}])

    db.delete_patient("A-2")

    assert [p["protocol_number"] for p in db.get_patients()] == ["A-1"]
    assert db.count_icd_codes() == 1
    assert db.count_icd_codes(keep) == 1


def test_delete_missing_patient(db):
    db.create_patient(make_patient("A-1"), [{"code": "I10"}])

    with pytest.raises(PatientNotFoundError):
        db.delete_patient("NOPE")

    assert db.count_patients() == 1


class TestSearch:
    @pytest.fixture(autouse=True)
    def populate(self, db):
        db.create_patient(make_patient("S-1", gender="male"), [{"code": "J18.9"}])
        db.create_patient(make_patient("S-2", gender="female"), [{"code": "J45.0"}, {"code": "I10"}])
        db.create_patient(make_patient("S-3", gender="female"), [{"code": "E11_9"}])

    def test_no_filters_returns_everything(self, db):
        assert len(db.search_patients()) == 3

    def test_icd_substring(self, db):
        result = db.search_patients(icd_code="J")
        assert {p["protocol_number"] for p in result} == {"S-1", "S-2"}

    def test_icd_match_keeps_all_codes_of_patient(self, db):
        result = db.search_patients(icd_code="J45")
        assert result[0]["icd_codes"] == ["J45.0", "I10"]

    def test_icd_substring_is_case_insensitive(self, db):
        result = db.search_patients(icd_code="j18")
        assert [p["protocol_number"] for p in result] == ["S-1"]

    def test_wildcards_match_literally(self, db):
        assert [p["protocol_number"] for p in db.search_patients(icd_code="_")] == ["S-3"]
        assert db.search_patients(icd_code="%") == []

    def test_gender_and_icd_combined(self, db):
        result = db.search_patients(icd_code="J", gender="female")
        assert [p["protocol_number"] for p in result] == ["S-2"]


def test_statistics_queries(db):
    db.create_patient(make_patient("A-1", gender="male"), [{"code": "I10"}])
    db.create_patient(make_patient("A-2", gender="female", date_of_birth="2010-01-01"), [{"code": "I10"}])
    db.create_patient(make_patient("A-3", gender="female"), [{"code": "I10"}])

    assert db.count_patients() == 3
    assert db.count_by_gender() == [
        {"gender": "female", "count": 2},
        {"gender": "male", "count": 1},
    ]
    assert sorted(db.get_birth_dates()) == ["1970-04-12", "1970-04-12", "2010-01-01"]


def test_closed_database_raises(tmp_path):
    database = Database(str(tmp_path / "closed.db"))
    with pytest.raises(DatabaseError):
        database.get_patients()
