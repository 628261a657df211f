"""Typed job payloads."""

import pytest

from portal.core.exceptions import ValidationError
from portal.services.payloads import (
    BuildPayload,
    DeliverablePayload,
    GenericPayload,
    NarrativePayload,
    PullPayload,
    ResearchPayload,
    decode_payload,
    encode_payload,
)


class TestDecode:

    def test_research_revision(self):
        payload = decode_payload("auto-research", {
            "revision_notes": "Add competitor pricing",
            "previous_research_id": "41",
            "previous_version": 2,
        })

        assert payload == ResearchPayload("Add competitor pricing", 41, 2)
        assert payload.is_revision

    def test_first_narrative_is_not_revision(self):
        payload = decode_payload("auto-narrative", {})

        assert isinstance(payload, NarrativePayload)
        assert not payload.is_revision

    def test_missing_payload_means_defaults(self):
        assert decode_payload("auto-build", None) == BuildPayload()
        assert decode_payload("auto-pull", {"ignored": True}) == PullPayload()

    def test_deliverables(self):
        payload = decode_payload("auto-emails", {"narrative_id": 9})

        assert payload == DeliverablePayload(job_type="auto-emails", narrative_id=9)

    def test_uninterpreted_types_keep_raw_data(self):
        payload = decode_payload("auto-copy", {"tone": "bold"})

        assert payload == GenericPayload(job_type="auto-copy", data={"tone": "bold"})

    @pytest.mark.parametrize("job_type, raw", [
        ("auto-dance", {}),
        ("auto-build", ["narrative_id"]),
        ("auto-build", {"narrative_id": "seven"}),
        ("auto-build", {"narrative_id": True}),
        ("auto-build", {"skip_assets": "yes"}),
        ("auto-research", {"revision_notes": 12}),
    ])
    def test_invalid(self, job_type, raw):
        with pytest.raises(ValidationError):
            decode_payload(job_type, raw)


class TestEncode:

    def test_drops_tag_and_empty_fields(self):
        assert encode_payload(ResearchPayload(revision_notes="tighten")) == {"revision_notes": "tighten"}
        assert encode_payload(BuildPayload(narrative_id=3)) == {"narrative_id": 3, "skip_assets": False}
        assert encode_payload(PullPayload()) == {}

    def test_generic_returns_copy(self):
        data = {"tone": "bold"}
        encoded = encode_payload(GenericPayload(job_type="auto-copy", data=data))

        assert encoded == data
        assert encoded is not data
