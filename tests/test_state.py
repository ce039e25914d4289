from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from detran_sc_lookup.models import VehicleRecord
from detran_sc_lookup.state import ConsultationStore


def _record(plate: str, *, total: str = "0.00", found: bool = True) -> VehicleRecord:
    return VehicleRecord(
        plate=plate,
        model="FIAT UNO",
        color="BRANCA",
        municipality="SAO JOSE",
        licensing_year=2024,
        restrictions="Sem Restrições",
        has_restrictions=False,
        total_debts=Decimal(total),
        last_update="19/10/2026, 09:30:00",
        found_in_source=found,
    )


def test_recent_plates_distinct_most_recent_first(tmp_path: Path) -> None:
    s = ConsultationStore(str(tmp_path / "consultations.db"))
    try:
        for plate in ("AAA1111", "BBB2222", "AAA1111", "CCC3333"):
            s.record_consultation(_record(plate))
        assert s.recent_plates() == ["CCC3333", "AAA1111", "BBB2222"]
        assert s.recent_plates(limit=2) == ["CCC3333", "AAA1111"]
    finally:
        s.close()


def test_latest_returns_last_stored_response(tmp_path: Path) -> None:
    s = ConsultationStore(str(tmp_path / "consultations.db"))
    try:
        s.record_consultation(_record("AAA1111", total="10.00"))
        rid = s.record_consultation(_record("AAA1111", total="1377.19"))
        s.record_consultation(_record("ZZZ9999", found=False))

        entry = s.latest("AAA1111")
        assert entry is not None
        assert entry.id == rid
        assert entry.total_debts == "1377.19"
        assert entry.response["totalDebts"] == 1377.19
        assert entry.response["restrictions"] == "Sem Restrições"

        missing = s.latest("ZZZ9999")
        assert missing is not None and missing.found_in_source is False
        assert s.latest("NOP0000") is None
    finally:
        s.close()


def test_store_creates_backup(tmp_path: Path) -> None:
    db_path = tmp_path / "consultations.db"
    s = ConsultationStore(str(db_path))
    try:
        s.record_consultation(_record("AAA1111"))
    finally:
        s.close()

    bak = tmp_path / "consultations.db.bak"
    assert db_path.exists()
    assert bak.exists()
    assert bak.stat().st_size > 0


def test_store_restores_from_backup_when_db_corrupted(tmp_path: Path) -> None:
    db_path = tmp_path / "consultations.db"

    s1 = ConsultationStore(str(db_path))
    try:
        s1.record_consultation(_record("AAA1111"))
    finally:
        s1.close()

    db_path.write_bytes(b"not a sqlite db")

    s2 = ConsultationStore(str(db_path))
    try:
        assert s2.recent_plates() == ["AAA1111"]
        s2.record_consultation(_record("BBB2222"))
        assert s2.recent_plates() == ["BBB2222", "AAA1111"]
    finally:
        s2.close()

    quarantined = list(tmp_path.glob("consultations.db.corrupt-*"))
    assert quarantined, "expected quarantined corrupted db file to be created"


def test_store_starts_empty_when_db_and_backup_are_unreadable(tmp_path: Path) -> None:
    db_path = tmp_path / "consultations.db"
    db_path.write_bytes(b"not a sqlite db")
    (tmp_path / "consultations.db.bak").write_bytes(b"not a sqlite db either")

    s = ConsultationStore(str(db_path))
    try:
        assert s.recent_plates() == []
        s.record_consultation(_record("AAA1111"))
        assert s.recent_plates() == ["AAA1111"]
    finally:
        s.close()

    # the next open restores from the backup written by that record
    db_path.write_bytes(b"garbage again")
    s2 = ConsultationStore(str(db_path))
    try:
        assert s2.recent_plates() == ["AAA1111"]
    finally:
        s2.close()
