"""
Content Portal
Upstream context budget codec.

Bounds how much upstream research / trend text is copied onto a promoted
project. The full text always goes to the cross-department reference
metadata; the project's ``source_context`` gets a truncated copy.

Token estimate: one token ≈ four characters.
"""

import math
from datetime import datetime, timezone

CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 4000
TRUNCATION_MARKER = "\n\n[... truncated to fit token budget]"


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Return *text* unchanged if it fits, else its first ``max_tokens * 4``
    characters followed by the truncation marker."""
    if not text:
        return text
    if estimate_tokens(text) <= max_tokens:
        return text
    return text[: max_tokens * CHARS_PER_TOKEN] + TRUNCATION_MARKER


def _forwarded_at() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_ref_metadata(promoted_by: str, ctx: dict) -> dict:
    """Metadata stored on the CrossDepartmentRef: the untruncated context."""
    research = ctx.get("research_content")
    metadata = {
        "promoted_by": promoted_by,
        "forwarded_at": ctx.get("forwarded_at") or _forwarded_at(),
    }
    if research:
        metadata["upstream_research"] = research
        metadata["token_count"] = estimate_tokens(research)
    if ctx.get("quality_scores"):
        metadata["upstream_quality_scores"] = ctx["quality_scores"]
    if ctx.get("trend_context"):
        metadata["upstream_trend_context"] = ctx["trend_context"]
    return metadata


def build_source_context(
    source_department: str,
    source_id,
    ctx: dict,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> dict | None:
    """Budgeted summary written onto the promoted project.

    Returns None when there is neither research nor trend context to forward.
    """
    research = ctx.get("research_content")
    trend = ctx.get("trend_context")
    if not research and not trend:
        return None

    source = {
        "source_department": source_department,
        "source_project_id": str(source_id),
        "forwarded_at": ctx.get("forwarded_at") or _forwarded_at(),
    }
    if research:
        source["research_summary"] = truncate_to_tokens(research, max_tokens)
    if trend:
        source["trend_context"] = trend
    if ctx.get("quality_scores"):
        source["quality_scores"] = ctx["quality_scores"]
    return source
