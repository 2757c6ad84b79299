"""HTTP domain gateway — implements DomainGateway against the owning services.

Organizer verification and event review expose the same internal contract:

    GET  {base}/work-items/{kind}/{item_id}
         → {"department", "priority", "status", "categories"}
    POST {base}/work-items/{kind}/{item_id}/escalation-decision
         ← {"action", "feedback"}
"""

from __future__ import annotations

import logging

import httpx

from workforce.application.ports.domain_gateway import DomainGateway, DomainItemInfo
from workforce.config import settings
from workforce.domain.errors import DomainGatewayError
from workforce.domain.value_objects.enums import EscalationAction, Priority
from workforce.domain.value_objects.work_item_ref import WorkItemRef

logger = logging.getLogger(__name__)


def _parse_priority(raw) -> Priority:
    try:
        return Priority(str(raw or Priority.NORMAL.value).strip().upper())
    except ValueError:
        logger.warning("Unknown priority '%s' from domain, using NORMAL", raw)
        return Priority.NORMAL


class HttpDomainGateway(DomainGateway):
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.domain_api_base_url).rstrip("/")
        self._token = token if token is not None else settings.domain_api_token
        self._timeout = timeout or settings.domain_api_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _path(ref: WorkItemRef) -> str:
        return f"/work-items/{ref.kind.value.lower()}/{ref.item_id}"

    async def get_work_item(self, ref: WorkItemRef) -> DomainItemInfo | None:
        try:
            async with self._client() as client:
                response = await client.get(self._path(ref))
                if response.status_code == 404:
                    logger.info("Domain does not know %s", ref)
                    return None
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.exception("Domain lookup failed for %s", ref)
            raise DomainGatewayError(f"Could not load {ref} from its owning domain: {e}") from e

        department = (data.get("department") or "").strip()
        if not department:
            raise DomainGatewayError(f"Owning domain returned {ref} without a department")

        return DomainItemInfo(
            department=department,
            priority=_parse_priority(data.get("priority")),
            domain_status=data.get("status"),
            categories=frozenset(str(c).upper() for c in data.get("categories") or ()),
        )

    async def apply_escalation_decision(
        self, ref: WorkItemRef, action: EscalationAction, feedback: str
    ) -> None:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._path(ref)}/escalation-decision",
                    json={"action": action.value, "feedback": feedback},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.exception("Domain rejected escalation decision for %s", ref)
            raise DomainGatewayError(
                f"Owning domain did not accept the {action.value} decision for {ref}: {e}"
            ) from e
        logger.info("Escalation decision %s delivered for %s", action.value, ref)
