"""Observability endpoints for activation code telemetry."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from codegate_api.api.dependencies.security import require_operator
from codegate_api.observability.activation_codes import get_activation_code_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/activation-codes",
    dependencies=[Depends(require_operator)],
    summary="Activation code observability snapshot",
)
async def get_activation_code_snapshot() -> dict[str, object]:
    return get_activation_code_store().snapshot().as_dict()


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
    dependencies=[Depends(require_operator)],
    summary="Prometheus-formatted activation code counters",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_activation_code_store().snapshot()
    lines: list[str] = []

    lines.extend(
        _format_metric(
            "codegate_codes_generated_total",
            "Activation codes issued",
            snapshot.generation.get("generated", 0),
        )
    )
    lines.extend(
        _format_metric(
            "codegate_code_generation_conflicts_total",
            "Generation attempts that collided with an existing code",
            snapshot.generation.get("conflicts", 0),
        )
    )
    for outcome, value in sorted(snapshot.redemptions.items()):
        lines.extend(
            _format_metric(
                "codegate_redemptions_total",
                "Redemption attempts grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )
    for key, value in sorted(snapshot.sweeps.items()):
        policy, _, bucket = key.partition(":")
        lines.extend(
            _format_metric(
                f"codegate_retention_sweep_{bucket}_total",
                "Retention sweep activity grouped by policy",
                value,
                labels={"policy": policy},
            )
        )
    for key, value in sorted(snapshot.rate_limits.items()):
        policy, _, bucket = key.partition(":")
        lines.extend(
            _format_metric(
                f"codegate_rate_limit_{bucket}_total",
                "Rate limit rejections grouped by policy",
                value,
                labels={"policy": policy},
            )
        )
    for reason, value in sorted(snapshot.anomalies.items()):
        lines.extend(
            _format_metric(
                "codegate_anomalies_total",
                "Anomalous request patterns grouped by reason",
                value,
                labels={"reason": reason},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
