"""Compliance norms a project is assessed against.

A project may target several norms; they are stored as one string joined
by ``" | "``.
"""

from __future__ import annotations

PROJECT_NORMS: tuple[str, ...] = ("IEC 62443", "IEC 61508", "ISO 27001", "NIST CSF", "None")
DEFAULT_NORM = "IEC 62443"
NORM_DELIMITER = " | "


def parse_project_norms(raw: str | None) -> list[str]:
    """Split a stored norm string into distinct, non-empty entries (order kept)."""
    value = (raw or "").strip()
    if not value:
        return []
    parts = value.split(NORM_DELIMITER) if NORM_DELIMITER in value else [value]
    seen: dict[str, None] = {}
    for part in parts:
        part = part.strip()
        if part:
            seen.setdefault(part, None)
    return list(seen)


def normalize_selectable_project_norms(
    norms: list[str] | None, fallback: str | None = None
) -> list[str]:
    """Keep only known norms; ``None`` survives only when it is the sole choice."""
    source = norms if norms else (parse_project_norms(fallback) or [DEFAULT_NORM])
    known: dict[str, None] = {}
    for norm in source:
        norm = norm.strip()
        if norm in PROJECT_NORMS:
            known.setdefault(norm, None)
    if not known:
        return [DEFAULT_NORM]
    without_none = [n for n in known if n != "None"]
    return without_none or ["None"]


def serialize_project_norms(norms: list[str]) -> str:
    return NORM_DELIMITER.join(normalize_selectable_project_norms(norms))
