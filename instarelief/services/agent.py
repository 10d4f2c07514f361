"""AI admin assistant backed by the Anthropic Messages API with tool use.

The model can look things up (NWS baseline for a point, users per ZIP,
dashboard analytics, recent catastrophes) and *prepare* a catastrophe
trigger. It can never send money: ``prepare_catastrophe`` only returns
``action="TRIGGER_CATASTROPHE"`` with the validated payload, and the admin
confirms it through the regular trigger endpoint.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import anthropic
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError
from instarelief.models import User
from instarelief.models.schemas import CatastropheCreate
from instarelief.services import catastrophe_service, noaa_client, user_service
from instarelief.services.zip_lookup import get_zip, zips_near

logger = logging.getLogger(__name__)

TRIGGER_CATASTROPHE = "TRIGGER_CATASTROPHE"

SYSTEM_PROMPT = """\
You are the InstaRelief Admin Automation Agent.
You help administrators of a disaster-relief micro-insurance platform: you
generate simulated disaster scenarios, validate which users would be affected,
summarize user and payout analytics, and prepare catastrophe triggers.

Rules:
- NEVER produce real emergency alerts. Every scenario you generate is a simulation.
- You cannot send payouts. To propose one, call prepare_catastrophe; an admin
  must confirm it before any funds move.
- Before preparing a catastrophe, check with validate_zip_users that the ZIP
  codes contain users with wallet addresses.
- Keep answers short and factual."""

# Multiplier on the standard alert payout, by the worst active NWS severity.
SEVERITY_PAYOUT_FACTOR = {"extreme": 1.5, "severe": 1.0, "moderate": 0.5}

TOOLS: list[dict[str, Any]] = [
    {
        "name": "generate_disaster_scenario",
        "description": (
            "Generate a simulated catastrophe for a coordinate using the NWS baseline "
            "(nearest city, active alerts at the point) and the ZIP codes near it. "
            "Returns a suggested severity and per-user payout."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "lat": {"type": "number"},
                "lon": {"type": "number"},
                "type": {"type": "string", "description": "e.g. Hurricane, Flood, Tornado"},
            },
            "required": ["lat", "lon", "type"],
        },
    },
    {
        "name": "validate_zip_users",
        "description": "Return the users registered in the given ZIP codes.",
        "input_schema": {
            "type": "object",
            "properties": {"zip_codes": {"type": "array", "items": {"type": "string"}}},
            "required": ["zip_codes"],
        },
    },
    {
        "name": "get_user_analytics",
        "description": "User counts by status and ZIP, and total credited balance.",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "get_recent_catastrophes",
        "description": "The most recent catastrophe triggers with payout totals.",
        "input_schema": {
            "type": "object",
            "properties": {"limit": {"type": "integer", "minimum": 1, "maximum": 50}},
        },
    },
    {
        "name": "prepare_catastrophe",
        "description": (
            "Prepare a catastrophe trigger for admin confirmation. Does NOT send "
            "any payout."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "type": {"type": "string"},
                "location": {"type": "string"},
                "zip_codes": {"type": "array", "items": {"type": "string"}},
                "amount": {"type": "number", "description": "Payout per user in USD"},
                "description": {"type": "string"},
            },
            "required": ["type", "location", "zip_codes", "amount"],
        },
    },
]


class AgentError(ReliefError):
    status_code = 502
    code = "AGENT_FAILED"


class AgentNotConfiguredError(AgentError):
    status_code = 503
    code = "AGENT_NOT_CONFIGURED"


@dataclass
class AgentReply:
    response: str
    action: str | None = None
    catastrophe_data: dict[str, Any] | None = None
    tool_calls: list[str] = field(default_factory=list)


@lru_cache(maxsize=1)
def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Process-wide API client; also the FastAPI dependency (override in tests)."""
    if not settings.anthropic_api_key:
        raise AgentNotConfiguredError("AI agent is not configured (set ANTHROPIC_API_KEY)")
    return anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)


def _text_of(content: list[Any]) -> str:
    return "\n".join(block.text for block in content if block.type == "text").strip()


class AdminAgent:
    def __init__(self, session: AsyncSession, client: anthropic.AsyncAnthropic):
        self.session = session
        self.client = client
        self.action: str | None = None
        self.catastrophe_data: dict[str, Any] | None = None

    async def run(self, query: str) -> AgentReply:
        """Answer one admin query, executing tool calls until the model stops."""
        query = query.strip()
        if not query:
            raise ReliefError("Query must not be empty")

        messages: list[dict[str, Any]] = [{"role": "user", "content": query}]
        tool_calls: list[str] = []

        for _ in range(settings.agent_max_tool_rounds):
            response = await self._create(messages)
            tool_uses = [block for block in response.content if block.type == "tool_use"]

            if response.stop_reason != "tool_use" or not tool_uses:
                return self._reply(_text_of(response.content), tool_calls)

            messages.append({"role": "assistant", "content": response.content})
            results = []
            for block in tool_uses:
                tool_calls.append(block.name)
                result, is_error = await self._dispatch(block.name, block.input or {})
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block.id,
                        "content": json.dumps(result, default=str),
                        "is_error": is_error,
                    }
                )
            messages.append({"role": "user", "content": results})

        logger.warning("Agent hit the tool round limit (%d)", settings.agent_max_tool_rounds)
        return self._reply(
            "I could not finish this request within the allowed number of steps.", tool_calls
        )

    def _reply(self, text: str, tool_calls: list[str]) -> AgentReply:
        if not text and self.action == TRIGGER_CATASTROPHE:
            text = "Catastrophe prepared. Review the details and confirm to send payouts."
        return AgentReply(
            response=text,
            action=self.action,
            catastrophe_data=self.catastrophe_data,
            tool_calls=tool_calls,
        )

    async def _create(self, messages: list[dict[str, Any]]):
        try:
            return await self.client.messages.create(
                model=settings.agent_model,
                max_tokens=settings.agent_max_tokens,
                system=SYSTEM_PROMPT,
                tools=TOOLS,
                messages=messages,
            )
        except anthropic.APIError as exc:
            logger.error("Anthropic API error: %s", exc)
            raise AgentError(f"AI agent request failed: {exc}") from exc

    async def _dispatch(self, name: str, tool_input: dict[str, Any]) -> tuple[Any, bool]:
        handler = getattr(self, f"_tool_{name}", None)
        if handler is None:
            return {"error": f"Unknown tool: {name}"}, True

        logger.info("Agent tool call: %s %s", name, tool_input)
        try:
            return await handler(**tool_input), False
        except (TypeError, ValueError, ReliefError) as exc:
            logger.warning("Agent tool %s failed: %s", name, exc)
            return {"error": str(exc)}, True

    # ── Tools ─────────────────────────────────────────────────────────────

    async def _tool_generate_disaster_scenario(
        self, lat: float, lon: float, type: str
    ) -> dict[str, Any]:
        location = await noaa_client.fetch_point_location(lat, lon)
        alerts = await noaa_client.fetch_alerts_for_point(lat, lon)
        zip_codes = zips_near(lat, lon)

        if location is None and zip_codes:
            nearest = get_zip(zip_codes[0])
            location_name = f"{nearest.city}, {nearest.state}"
        else:
            location_name = str(location) if location else f"{lat:.3f}, {lon:.3f}"

        severities = [a.severity.lower() for a in alerts]
        severity = next(
            (s.capitalize() for s in SEVERITY_PAYOUT_FACTOR if s in severities), "Severe"
        )
        amount = round(settings.alert_payout_usd * SEVERITY_PAYOUT_FACTOR[severity.lower()], 2)

        return {
            "simulated": True,
            "type": type,
            "location": location_name,
            "severity": severity,
            "zip_codes": zip_codes,
            "suggested_amount_usd": amount,
            "active_nws_alerts": [
                {"event": a.event, "severity": a.severity, "headline": a.headline}
                for a in alerts
            ],
            "description": f"Simulated {type} affecting {location_name} ({severity}).",
        }

    async def _tool_validate_zip_users(self, zip_codes: list[str]) -> dict[str, Any]:
        result = await self.session.execute(
            select(User).where(User.zip.in_(zip_codes)).order_by(User.zip)
        )
        users = list(result.scalars().all())
        return {
            "count": len(users),
            "with_wallet": sum(1 for u in users if u.wallet_address),
            "users": [
                {
                    "name": u.display_name,
                    "email": u.email,
                    "zip": u.zip,
                    "status": u.status.value,
                    "has_wallet": bool(u.wallet_address),
                }
                for u in users
            ],
        }

    async def _tool_get_user_analytics(self) -> dict[str, Any]:
        return await user_service.user_analytics(self.session)

    async def _tool_get_recent_catastrophes(self, limit: int = 5) -> dict[str, Any]:
        catastrophes = await catastrophe_service.list_catastrophes(self.session, limit=limit)
        return {
            "catastrophes": [
                {
                    "id": c.id,
                    "type": c.type,
                    "location": c.location,
                    "zip_codes": c.zip_codes,
                    "amount_usd": c.amount_usd,
                    "total_affected": c.total_affected,
                    "successful_payouts": c.successful_payouts,
                    "failed_payouts": c.failed_payouts,
                    "created_at": c.created_at,
                }
                for c in catastrophes
            ]
        }

    async def _tool_prepare_catastrophe(self, **fields: Any) -> dict[str, Any]:
        try:
            prepared = CatastropheCreate(**fields)
        except ValidationError as exc:
            raise ValueError(f"Invalid catastrophe: {exc.errors()[0]['msg']}") from exc

        self.action = TRIGGER_CATASTROPHE
        self.catastrophe_data = prepared.model_dump()
        return {"prepared": True, "requires_admin_confirmation": True, **self.catastrophe_data}
