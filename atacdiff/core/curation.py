"""
Manual curation of the merged region set.

Expert corrections are kept as data in a JSON file rather than as code:

- ``delete``: regions removed from the merged set by exact coordinate match
- ``insert``: regions appended verbatim after the deletions
- ``rescue``: region ids kept by the blacklist filter even when they overlap
  an excluded region
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from .exceptions import CurationFileError, MalformedRegionIdError
from .regions import Region, RegionId, RegionSet, Strand

logger = logging.getLogger(__name__)


class CuratedRegion(BaseModel):
    """One literal region in a curation file."""

    chrom: str = Field(..., min_length=1)
    start: int = Field(..., ge=0)
    end: int
    strand: Strand = Strand.UNKNOWN

    @field_validator("strand", mode="before")
    @classmethod
    def _parse_strand(cls, value):
        return Strand.parse(value)

    @model_validator(mode="after")
    def _check_interval(self):
        if self.start >= self.end:
            raise ValueError(f"start must be < end ({self.chrom}:{self.start}-{self.end})")
        return self

    def to_region(self) -> Region:
        return Region(self.chrom, self.start, self.end, self.strand)


class CurationFile(BaseModel):
    """Schema of the JSON curation file."""

    delete: List[CuratedRegion] = Field(default_factory=list)
    insert: List[CuratedRegion] = Field(default_factory=list)
    rescue: List[str] = Field(default_factory=list)

    @field_validator("rescue")
    @classmethod
    def _check_ids(cls, values):
        try:
            return [str(RegionId.parse(v)) for v in values]
        except MalformedRegionIdError as e:
            raise ValueError(str(e)) from e


@dataclass(frozen=True)
class Curation:
    """Parsed manual corrections."""

    delete: Tuple[Region, ...] = ()
    insert: Tuple[Region, ...] = ()
    rescue: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_model(cls, model: CurationFile) -> "Curation":
        return cls(
            delete=tuple(r.to_region() for r in model.delete),
            insert=tuple(r.to_region() for r in model.insert),
            rescue=frozenset(model.rescue),
        )


def load_curation(path: Optional[str]) -> Curation:
    """Load a curation JSON file; ``None`` gives an empty curation."""
    if path is None:
        return Curation()

    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise CurationFileError(f"cannot read file: {e}", path=path) from e
    except json.JSONDecodeError as e:
        raise CurationFileError(f"invalid JSON: {e.msg}", path=path, line=e.lineno) from e

    try:
        model = CurationFile.model_validate(data)
    except PydanticValidationError as e:
        raise CurationFileError(str(e), path=path) from e

    curation = Curation.from_model(model)
    logger.info(
        f"Loaded curation from {path}: {len(curation.delete)} deletions, "
        f"{len(curation.insert)} insertions, {len(curation.rescue)} rescued ids"
    )
    return curation


def apply_overrides(
    regions: RegionSet,
    delete: Sequence[Region] = (),
    insert: Sequence[Region] = (),
) -> RegionSet:
    """Remove exact matches of ``delete`` and append ``insert``.

    Matching compares chrom, start, end and strand literally. Survivors keep
    their order and inserted regions follow in the order given.
    """
    to_delete = set(delete)
    survivors = [r for r in regions if r not in to_delete]

    matched = to_delete.intersection(regions)
    for region in to_delete - matched:
        logger.warning(f"Curated deletion {region} matched no merged region")

    logger.info(
        f"Manual overrides: removed {len(regions) - len(survivors)} regions, "
        f"inserted {len(insert)}"
    )
    return RegionSet(survivors + list(insert))


def apply_curation(regions: RegionSet, curation: Curation) -> RegionSet:
    return apply_overrides(regions, curation.delete, curation.insert)
