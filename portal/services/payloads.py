"""
Content Portal
Typed job payloads for the worker boundary.

The queue stores payloads as opaque JSON. Workers call ``decode_payload``
right after claiming a job and receive one variant of ``JobPayload``; a
malformed payload raises ``ValidationError`` so the worker can fail the job
instead of executing it with bad input.

Usage:
    job = job_store.claim_next({"auto-build"})
    payload = decode_payload(job.job_type, job.payload)
    if isinstance(payload, BuildPayload):
        ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Union

from portal.core.exceptions import ValidationError
from portal.models.pipeline import JOB_TYPES


@dataclass(frozen=True)
class PullPayload:
    job_type: str = "auto-pull"


@dataclass(frozen=True)
class ResearchPayload:
    revision_notes: str | None = None
    previous_research_id: int | None = None
    previous_version: int | None = None
    job_type: str = "auto-research"

    @property
    def is_revision(self) -> bool:
        return self.revision_notes is not None


@dataclass(frozen=True)
class NarrativePayload:
    revision_notes: str | None = None
    previous_narrative_id: int | None = None
    previous_version: int | None = None
    job_type: str = "auto-narrative"

    @property
    def is_revision(self) -> bool:
        return self.revision_notes is not None


@dataclass(frozen=True)
class BuildPayload:
    narrative_id: int | None = None
    skip_assets: bool = False
    job_type: str = "auto-build"


@dataclass(frozen=True)
class DeliverablePayload:
    """auto-one-pager and auto-emails: derived from the approved narrative."""

    job_type: str
    narrative_id: int | None = None


@dataclass(frozen=True)
class GenericPayload:
    """Job types whose payload the core does not interpret."""

    job_type: str
    data: dict = field(default_factory=dict)


JobPayload = Union[
    PullPayload, ResearchPayload, NarrativePayload, BuildPayload, DeliverablePayload, GenericPayload,
]


def _opt_int(raw: dict, key: str, job_type: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{job_type}: {key} must be an integer", details={key: value})
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{job_type}: {key} must be an integer", details={key: value}) from None


def _opt_str(raw: dict, key: str, job_type: str) -> str | None:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{job_type}: {key} must be a string", details={key: value})
    return value


def decode_payload(job_type: str, raw) -> JobPayload:
    """Decode the stored JSON payload for *job_type* into its variant."""
    if job_type not in JOB_TYPES:
        raise ValidationError(f"Unknown job type: {job_type}")
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(f"{job_type}: payload must be a JSON object")

    if job_type == "auto-pull":
        return PullPayload()
    if job_type == "auto-research":
        return ResearchPayload(
            revision_notes=_opt_str(raw, "revision_notes", job_type),
            previous_research_id=_opt_int(raw, "previous_research_id", job_type),
            previous_version=_opt_int(raw, "previous_version", job_type),
        )
    if job_type == "auto-narrative":
        return NarrativePayload(
            revision_notes=_opt_str(raw, "revision_notes", job_type),
            previous_narrative_id=_opt_int(raw, "previous_narrative_id", job_type),
            previous_version=_opt_int(raw, "previous_version", job_type),
        )
    if job_type == "auto-build":
        skip_assets = raw.get("skip_assets", False)
        if not isinstance(skip_assets, bool):
            raise ValidationError("auto-build: skip_assets must be a boolean")
        return BuildPayload(
            narrative_id=_opt_int(raw, "narrative_id", job_type),
            skip_assets=skip_assets,
        )
    if job_type in ("auto-one-pager", "auto-emails"):
        return DeliverablePayload(
            job_type=job_type,
            narrative_id=_opt_int(raw, "narrative_id", job_type),
        )
    return GenericPayload(job_type=job_type, data=dict(raw))


def encode_payload(payload: JobPayload) -> dict:
    """Inverse of ``decode_payload``: the JSON object to store (tag excluded)."""
    if isinstance(payload, GenericPayload):
        return dict(payload.data)
    data = asdict(payload)
    data.pop("job_type", None)
    return {k: v for k, v in data.items() if v is not None}
