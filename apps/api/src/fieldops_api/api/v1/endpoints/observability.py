"""Observability endpoints for loyalty and sync counters."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from fieldops_api.observability.loyalty import get_loyalty_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get("/loyalty", summary="Loyalty transition and sync counters")
async def get_loyalty_snapshot() -> dict[str, object]:
    return get_loyalty_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    summary="Prometheus-formatted loyalty metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_loyalty_store().snapshot()
    lines: list[str] = []
    for key, count in sorted(snapshot.transitions.items()):
        record, _, change = key.partition(":")
        from_status, _, to_status = change.partition("->")
        lines.extend(
            _format_metric(
                "fieldops_loyalty_transitions_total",
                "Approval state transitions",
                count,
                {"record": record, "from": from_status, "to": to_status},
            )
        )
    for source_type, count in sorted(snapshot.ledger_entries.items()):
        lines.extend(
            _format_metric(
                "fieldops_ledger_entries_total",
                "Points ledger entries written",
                count,
                {"source_type": source_type},
            )
        )
    for source_type, points in sorted(snapshot.ledger_points.items()):
        lines.extend(
            _format_metric(
                "fieldops_ledger_points_total",
                "Signed points written to the ledger",
                points,
                {"source_type": source_type},
            )
        )
    for key, count in sorted(snapshot.sync_acks.items()):
        if key.startswith("channel:"):
            labels = {"channel": key.split(":", 1)[1]}
            name = "fieldops_journey_sync_ops_by_channel_total"
        else:
            labels = {"status": key}
            name = "fieldops_journey_sync_acks_total"
        lines.extend(_format_metric(name, "Journey op sync acknowledgements", count, labels))
    return PlainTextResponse("\n".join(lines) + "\n")
