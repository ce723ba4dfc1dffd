"""CSV export of referrals."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from growth_game.config.plans import get_plan
from growth_game.models.referral import Referral

EXPORT_HEADER: list[str] = [
    "Name",
    "Phone",
    "Status",
    "Tag",
    "Plan",
    "Points",
    "Referred by",
    "Created at",
]


def _quote(cell: Any) -> str:
    text = "" if cell is None else str(cell)
    return '"' + text.replace('"', '""') + '"'


def build_csv(rows: Iterable[Sequence[Any]]) -> str:
    """
    Render rows as CSV.

    Every cell is wrapped in double quotes with inner quotes doubled, None
    becomes an empty cell and rows are joined with a bare newline.
    """
    return "\n".join(",".join(_quote(cell) for cell in row) for row in rows)


def _format_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def referral_to_row(
    referral: Referral,
    plan_overrides: dict[str, Any] | None = None,
) -> list[Any]:
    plan = get_plan(referral.converted_plan_id, plan_overrides) if referral.converted_plan_id else None
    return [
        referral.lead_name,
        referral.lead_phone,
        referral.status,
        referral.contact_tag,
        plan.label if plan else referral.converted_plan_id,
        referral.lead_points,
        referral.referrer_name,
        _format_date(referral.created_at),
    ]


def referrals_to_csv(
    referrals: Iterable[Referral],
    plan_overrides: dict[str, Any] | None = None,
) -> str:
    """CSV document (header included) for a list of referrals."""
    rows: list[list[Any]] = [EXPORT_HEADER]
    rows.extend(referral_to_row(referral, plan_overrides) for referral in referrals)
    return build_csv(rows)
