from clinic_intake.models import Patient
from clinic_intake.seed import DEMO_PATIENTS, ensure_patients
from clinic_intake.services.ledger import total_for_patient


def test_seed_is_idempotent(db):
    first = ensure_patients(db)
    db.commit()
    second = ensure_patients(db)
    db.commit()

    assert len(first) == len(DEMO_PATIENTS)
    assert [p.id for p in first] == [p.id for p in second]
    assert db.query(Patient).count() == len(DEMO_PATIENTS)


def test_seeded_balances_are_consistent(db):
    patients = ensure_patients(db)
    db.commit()

    for patient in patients:
        assert patient.total_received == total_for_patient(db, patient.id)
    assert patients[0].total_amount == 70000
    assert patients[0].total_received == 35000
