"""Rendering of transactional emails from Jinja2 templates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from loyaltycore.billing.plans import DOWNGRADE_PLAN, display_name

_TEMPLATE_DIR = Path(__file__).parent / "templates"


@lru_cache
def _env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


@dataclass(frozen=True, slots=True)
class RenderedEmail:
    subject: str
    html: str


def urgency(days_remaining: int) -> tuple[str, str]:
    """Return (headline wording, accent colour) for a countdown."""
    if days_remaining <= 1:
        return "expires tomorrow", "#dc2626"
    if days_remaining <= 3:
        return "ending soon", "#f59e0b"
    return "ending", "#3b82f6"


def render_trial_expiring_email(
    merchant_name: str,
    days_remaining: int,
    trial_ends_at: datetime,
    current_plan: str,
    app_url: str,
) -> RenderedEmail:
    plan_name = display_name(current_plan)
    days_text = "1 day" if days_remaining == 1 else f"{days_remaining} days"
    wording, color = urgency(days_remaining)
    base = app_url.rstrip("/")
    html = _env().get_template("trial_expiring.html").render(
        merchant_name=merchant_name,
        days_remaining=days_remaining,
        days_label="day" if days_remaining == 1 else "days",
        trial_end_date=trial_ends_at.strftime("%A, %B %d, %Y").replace(" 0", " "),
        plan_name=plan_name,
        downgrade_plan=display_name(DOWNGRADE_PLAN),
        urgency_text=wording,
        urgency_color=color,
        upgrade_url=f"{base}/dashboard/settings?tab=plans",
        dashboard_url=f"{base}/dashboard",
        year=datetime.now(UTC).year,
    )
    return RenderedEmail(subject=f"Your {plan_name} trial expires in {days_text}", html=html)
