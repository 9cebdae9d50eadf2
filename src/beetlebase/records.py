"""In-memory record store for specimens, photos and measurements.

The RecordStore owns the individuals collection and the session plan
tier. All mutation goes through its operations; reads hand out deep
copies so callers cannot change stored state behind its back.

Quota checks are re-evaluated inside the write paths against the plan
current at the time of the call, whatever the caller checked beforehand.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .errors import NotFound, ValidationError, field_errors
from .limits import ensure_can_add_individual, ensure_can_add_photo, get_photo_limit
from .schemas import (
    Individual,
    IndividualDraft,
    Measurement,
    Photo,
    PLAN_FREE,
    PLAN_PRO,
    VALID_PLANS,
)
from .utils import generate_id, utcnow


FULL_SIZE_SEGMENT = "/600/400"
THUMB_SIZE_SEGMENT = "/300/200"

SORT_KEY_LATEST_WEIGHT = "latest_weight_g"


# ============================================================================
# Derived values
# ============================================================================

def latest_measurement(individual: Individual) -> Optional[Measurement]:
    """Most recent measurement by `measured_at` (not by insertion order)."""
    if not individual.measurements:
        return None
    return sorted(individual.measurements, key=lambda m: m.measured_at, reverse=True)[0]


def latest_weight(individual: Individual) -> Optional[float]:
    """Weight of the most recent measurement, if it recorded one."""
    measurement = latest_measurement(individual)
    return measurement.weight_g if measurement else None


def primary_photo(individual: Individual) -> Optional[Photo]:
    """The primary photo, falling back to the first one."""
    for photo in individual.photos:
        if photo.is_primary:
            return photo
    return individual.photos[0] if individual.photos else None


def thumbnail_url(photo_url: str) -> str:
    """Derive a thumbnail url; urls without a size segment are reused as-is."""
    return photo_url.replace(FULL_SIZE_SEGMENT, THUMB_SIZE_SEGMENT)


def profile_path(individual_code: str) -> str:
    return f"/u/{individual_code.strip().lower()}"


def copy_as_draft(source: Individual) -> IndividualDraft:
    """
    Pre-fill a new draft from an existing record.

    Species, stage, sex and lineage carry over. Identity-sensitive fields
    (code, birth date, notes) are cleared and the introduced date is reset
    to today, for "duplicate and re-register" workflows.

    The draft is built without validation: its code is empty and must be
    filled in before it is passed to RecordStore.add_individual.
    """
    return IndividualDraft.model_construct(
        individual_code="",
        species_common=source.species_common,
        species_scientific=source.species_scientific,
        stage=source.stage,
        sex=source.sex,
        introduced_date=date.today(),
        birth_date=None,
        line_name=source.line_name,
        parent_code_m=source.parent_code_m,
        parent_code_f=source.parent_code_f,
        notes=None,
    )


# ============================================================================
# Record Store
# ============================================================================

class RecordStore:
    """Owns individuals and the session plan tier.

    Attributes:
        plan: Current plan tier ('free' or 'pro')
    """

    def __init__(self, plan: str = PLAN_FREE, individuals: Optional[Iterable[Individual]] = None):
        if plan not in VALID_PLANS:
            raise ValueError(f"Unknown plan '{plan}'. Valid plans: {sorted(VALID_PLANS)}")
        self._plan = plan
        self._individuals: List[Individual] = [ind.model_copy(deep=True) for ind in individuals or []]

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    @property
    def plan(self) -> str:
        return self._plan

    def upgrade_plan(self) -> str:
        """Move the session to the pro tier. There is no downgrade."""
        if self._plan == PLAN_PRO:
            logger.info("Plan already pro; upgrade is a no-op")
            return self._plan
        self._plan = PLAN_PRO
        logger.info("Plan upgraded to pro")
        return self._plan

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._individuals)

    def list_individuals(self) -> List[Individual]:
        """All individuals in insertion order."""
        return [ind.model_copy(deep=True) for ind in self._individuals]

    def get_individual(self, individual_id: str) -> Individual:
        return self._find(individual_id).model_copy(deep=True)

    def find_by_code(self, individual_code: str) -> Optional[Individual]:
        """First individual with this code (codes are not enforced unique)."""
        for ind in self._individuals:
            if ind.individual_code == individual_code:
                return ind.model_copy(deep=True)
        return None

    def code_exists(self, individual_code: str) -> bool:
        return any(ind.individual_code == individual_code for ind in self._individuals)

    def search(self, term: str) -> List[Individual]:
        """Case-insensitive substring match over code, common name and line name."""
        needle = (term or "").strip().lower()
        if not needle:
            return self.list_individuals()

        def matches(ind: Individual) -> bool:
            haystacks = [ind.individual_code, ind.species_common, ind.line_name or ""]
            return any(needle in value.lower() for value in haystacks)

        return [ind.model_copy(deep=True) for ind in self._individuals if matches(ind)]

    def sort_individuals(
        self,
        key: str = "individual_code",
        descending: bool = False,
        individuals: Optional[List[Individual]] = None,
    ) -> List[Individual]:
        """
        Sort individuals by a record field or by latest weight.

        Individuals missing the key sort as the lowest value (latest weight
        uses -1 when there is none).

        Args:
            key: Field name, or 'latest_weight_g'
            descending: Reverse order
            individuals: Subset to sort (defaults to the whole store)
        """
        items = individuals if individuals is not None else self.list_individuals()

        if key == SORT_KEY_LATEST_WEIGHT:
            def sort_value(ind: Individual) -> Any:
                weight = latest_weight(ind)
                return weight if weight is not None else -1
        else:
            if key not in Individual.model_fields:
                raise ValidationError(f"Cannot sort by unknown field '{key}'", [{"field": key, "message": "unknown field"}])

            def sort_value(ind: Individual) -> Any:
                value = getattr(ind, key)
                if value is None:
                    return (0, "")
                if hasattr(value, "value"):
                    value = value.value
                return (1, value)

        return sorted(items, key=sort_value, reverse=descending)

    def known_values(self, field: str) -> List[str]:
        """Distinct non-empty values of a text field, sorted (form suggestions)."""
        if field not in Individual.model_fields:
            raise ValidationError(f"Unknown field '{field}'", [{"field": field, "message": "unknown field"}])
        values = {getattr(ind, field) for ind in self._individuals}
        return sorted(v for v in values if isinstance(v, str) and v)

    def photo_counts(self) -> List[int]:
        return [len(ind.photos) for ind in self._individuals]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_individual(self, draft: IndividualDraft) -> Individual:
        """
        Register a new individual.

        Args:
            draft: Record without identity, photos or measurements

        Returns:
            The stored individual

        Raises:
            QuotaExceeded: if the current plan's individual limit is reached
            ValidationError: if required fields are missing or blank
        """
        ensure_can_add_individual(self._plan, len(self._individuals))

        try:
            individual = Individual(
                **draft.model_dump(),
                id=generate_id(),
                photos=[],
                measurements=[],
                public_profile_url=profile_path(draft.individual_code or ""),
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Missing or invalid required fields",
                field_errors(e),
            ) from e
        self._individuals.append(individual)

        logger.info(f"Registered individual {individual.individual_code} ({individual.id})")
        return individual.model_copy(deep=True)

    def update_individual(self, record: Individual) -> Individual:
        """
        Replace the stored record with the same id.

        Calling it twice with the same record leaves the same state as once.

        Raises:
            NotFound: if no record has this id
            ValidationError: if the record has more than one primary photo
                or more photos than the plan allows
        """
        index = self._index_of(record.id)

        primaries = sum(1 for photo in record.photos if photo.is_primary)
        if primaries > 1:
            raise ValidationError(
                "Only one photo can be primary",
                [{"field": "photos", "message": f"{primaries} photos are marked primary"}],
            )
        photo_limit = get_photo_limit(self._plan)
        if photo_limit is not None and len(record.photos) > photo_limit:
            raise ValidationError(
                f"Too many photos for the {self._plan} plan",
                [{"field": "photos", "message": f"at most {photo_limit} photos allowed"}],
            )

        self._individuals[index] = record.model_copy(deep=True)
        logger.info(f"Updated individual {record.individual_code} ({record.id})")
        return record.model_copy(deep=True)

    def add_photo(self, individual_id: str, photo_url: str) -> Photo:
        """
        Append a photo to an individual.

        The first photo of an individual becomes primary.

        Raises:
            NotFound: if the individual does not exist
            ValidationError: if the url is blank
            QuotaExceeded: if the individual is at the plan's photo limit
        """
        individual = self._find(individual_id)

        if not photo_url or not photo_url.strip():
            raise ValidationError("Photo url is required", [{"field": "url", "message": "must not be blank"}])

        ensure_can_add_photo(self._plan, len(individual.photos))

        photo = Photo(
            id=generate_id("p"),
            url=photo_url,
            thumb_url=thumbnail_url(photo_url),
            created_at=utcnow(),
            is_primary=len(individual.photos) == 0,
        )
        individual.photos.append(photo)

        logger.info(
            f"Added photo {photo.id} to {individual.individual_code} "
            f"({len(individual.photos)} photos, primary={photo.is_primary})"
        )
        return photo.model_copy()

    def add_measurement(self, individual_id: str, measurement: Dict[str, Any]) -> Measurement:
        """
        Append a measurement to an individual.

        Args:
            individual_id: Target individual
            measurement: Fields of Measurement without `id`

        Raises:
            NotFound: if the individual does not exist
            ValidationError: if the measurement is malformed
        """
        individual = self._find(individual_id)

        try:
            record = Measurement(id=generate_id("m"), **measurement)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid measurement",
                field_errors(e),
            ) from e

        individual.measurements.append(record)
        logger.info(f"Added measurement {record.id} to {individual.individual_code}")
        return record.model_copy()

    def replace_measurement(self, individual_id: str, measurement: Measurement) -> Measurement:
        """Replace an existing measurement with the same id."""
        individual = self._find(individual_id)
        for index, existing in enumerate(individual.measurements):
            if existing.id == measurement.id:
                individual.measurements[index] = measurement.model_copy()
                return measurement.model_copy()
        raise NotFound("Measurement", measurement.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index_of(self, individual_id: str) -> int:
        for index, ind in enumerate(self._individuals):
            if ind.id == individual_id:
                return index
        raise NotFound("Individual", individual_id)

    def _find(self, individual_id: str) -> Individual:
        return self._individuals[self._index_of(individual_id)]


__all__ = [
    "RecordStore",
    "copy_as_draft",
    "latest_measurement",
    "latest_weight",
    "primary_photo",
    "thumbnail_url",
    "SORT_KEY_LATEST_WEIGHT",
]
