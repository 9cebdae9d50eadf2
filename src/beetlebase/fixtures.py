"""Demo data used to seed a new session."""

from datetime import date, datetime, timezone
from typing import List

from .schemas import (
    Individual,
    Job,
    Measurement,
    Photo,
    Sex,
    Stage,
    User,
    EXPORT_TYPE_PEDIGREE_PDF,
    IMPORT_TYPE_INDIVIDUALS,
    IMPORT_TYPE_MEASUREMENTS,
    JOB_KIND_EXPORT,
    JOB_KIND_IMPORT,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
    PLAN_FREE,
    PLAN_PRO,
    USER_STATUS_ACTIVE,
    USER_STATUS_SUSPENDED,
)


def _utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def _photo(photo_id: str, seed: str, created_at: datetime, is_primary: bool = False) -> Photo:
    return Photo(
        id=photo_id,
        url=f"https://picsum.photos/seed/{seed}/600/400",
        thumb_url=f"https://picsum.photos/seed/{seed}/300/200",
        created_at=created_at,
        is_primary=is_primary,
    )


def demo_individuals() -> List[Individual]:
    return [
        Individual(
            id="1",
            individual_code="DHO-2024-001",
            species_common="Japanese Giant Stag Beetle",
            species_scientific="Dorcus hopei binodulosus",
            stage=Stage.ADULT,
            sex=Sex.MALE,
            birth_date=date(2023, 7, 15),
            introduced_date=date(2024, 1, 10),
            line_name="YG-Bloodline",
            parent_code_m="YG-2022-A",
            parent_code_f="YG-2022-B",
            notes="Very lively since eclosion. Eats jelly eagerly. Promising breeding stock.",
            public_profile_url="/u/dho-2024-001",
            photos=[
                _photo("p1-1", "dho001", _utc(2024, 5, 20, 10, 0), is_primary=True),
                _photo("p1-2", "dho001-2", _utc(2024, 5, 21, 11, 30)),
                _photo("p1-3", "dho001-3", _utc(2024, 5, 22, 11, 30)),
            ],
            measurements=[
                Measurement(id="m1-1", measured_at=_utc(2023, 11, 1, 9), weight_g=32.5),
                Measurement(id="m1-2", measured_at=_utc(2024, 2, 1, 9), weight_g=34.1),
                Measurement(
                    id="m1-3",
                    measured_at=_utc(2024, 5, 15, 9),
                    weight_g=31.8,
                    length_mm=85.2,
                    jaw_width_mm=6.8,
                ),
            ],
        ),
        Individual(
            id="2",
            individual_code="PMI-2025-002",
            species_common="Miyama Stag Beetle",
            species_scientific="Lucanus maculifemoratus",
            stage=Stage.LARVA,
            sex=Sex.UNKNOWN,
            birth_date=date(2024, 8, 1),
            introduced_date=date(2024, 9, 1),
            line_name="Fuji-Line",
            notes="Second instar larva. Kept in a mycelium bottle.",
            public_profile_url="/u/pmi-2025-002",
            photos=[_photo("p2-1", "pmi002", _utc(2024, 9, 1, 14, 0), is_primary=True)],
            measurements=[
                Measurement(id="m2-1", measured_at=_utc(2024, 9, 1, 14), weight_g=3.5),
                Measurement(id="m2-2", measured_at=_utc(2024, 12, 1, 10), weight_g=15.2),
                Measurement(id="m2-3", measured_at=_utc(2025, 3, 1, 10), weight_g=22.8),
            ],
        ),
        Individual(
            id="3",
            individual_code="GME-2023-003",
            species_common="Giraffe Stag Beetle",
            species_scientific="Prosopocoilus giraffa",
            stage=Stage.PUPA,
            sex=Sex.MALE,
            introduced_date=date(2023, 12, 1),
            line_name="Keisuke-G",
            parent_code_m="GME-K-01",
            parent_code_f="GME-K-02",
            notes="Pupal chamber confirmed. Waiting for eclosion.",
            public_profile_url="/u/gme-2023-003",
            photos=[_photo("p3-1", "gme003", _utc(2024, 4, 10, 18, 0), is_primary=True)],
            measurements=[
                Measurement(id="m3-1", measured_at=_utc(2024, 3, 15, 12), weight_g=45.1),
            ],
        ),
    ]


def demo_users() -> List[User]:
    return [
        User(id="u1", email="breeder1@example.com", status=USER_STATUS_ACTIVE, plan=PLAN_PRO),
        User(id="u2", email="user2@example.com", status=USER_STATUS_ACTIVE, plan=PLAN_FREE),
        User(id="u3", email="test3@example.com", status=USER_STATUS_SUSPENDED, plan=PLAN_FREE),
    ]


def demo_jobs() -> List[Job]:
    return [
        Job(
            id="job-i1",
            kind=JOB_KIND_IMPORT,
            type=IMPORT_TYPE_INDIVIDUALS,
            status=JOB_STATUS_SUCCEEDED,
            submitted_at=_utc(2024, 5, 30, 10, 0),
            result="28/30 success",
        ),
        Job(
            id="job-i2",
            kind=JOB_KIND_IMPORT,
            type=IMPORT_TYPE_MEASUREMENTS,
            status=JOB_STATUS_FAILED,
            submitted_at=_utc(2024, 5, 29, 14, 20),
            result="Invalid date format on line 15",
        ),
        Job(
            id="job-i3",
            kind=JOB_KIND_IMPORT,
            type=IMPORT_TYPE_INDIVIDUALS,
            status=JOB_STATUS_RUNNING,
            submitted_at=_utc(2024, 5, 30, 11, 5),
            started_at=_utc(2024, 5, 30, 11, 5),
            result="Processing...",
        ),
        Job(
            id="job-e1",
            kind=JOB_KIND_EXPORT,
            type=EXPORT_TYPE_PEDIGREE_PDF,
            status=JOB_STATUS_COMPLETED,
            submitted_at=_utc(2024, 5, 28, 9, 0),
            result="Download",
        ),
        Job(
            id="job-e2",
            kind=JOB_KIND_EXPORT,
            type=EXPORT_TYPE_PEDIGREE_PDF,
            status=JOB_STATUS_PENDING,
            submitted_at=_utc(2024, 5, 30, 11, 10),
            result="Queued",
        ),
    ]
