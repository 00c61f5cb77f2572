from __future__ import annotations

from dataclasses import dataclass


# A single quake object carries its date directly; list wrappers do not.
SINGLE_RECORD_FIELD = "Tanggal"


@dataclass(frozen=True)
class One:
    record: dict


@dataclass(frozen=True)
class Many:
    records: list[dict]


OneOrMany = One | Many


def parse_bmkg_document(doc: object) -> OneOrMany | None:
    """Locate ``Infogempa.gempa`` and classify it.

    ``doc`` is an already decoded JSON value. Returns ``None`` when the
    envelope is missing or holds nothing usable.
    """
    if not isinstance(doc, dict):
        return None
    info = doc.get("Infogempa")
    if not isinstance(info, dict):
        return None
    gempa = info.get("gempa")

    if isinstance(gempa, dict):
        if SINGLE_RECORD_FIELD in gempa:
            return One(record=gempa)
        values = [v for v in gempa.values() if isinstance(v, dict)]
        return Many(records=values) if values else None
    if isinstance(gempa, list):
        return Many(records=[r for r in gempa if isinstance(r, dict)])
    return None


def records_of(payload: OneOrMany | None) -> list[dict]:
    if payload is None:
        return []
    if isinstance(payload, One):
        return [payload.record]
    return list(payload.records)
