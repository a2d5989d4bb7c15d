import httpx
import logging
from functools import lru_cache
from typing import Optional
from callbridge.config.environment import config
from callbridge.tools.schemas import ToolResult

logger = logging.getLogger(__name__)

# Automation scenario routes
ROUTE_GREETING = "1"
ROUTE_TRANSCRIPT = "2"
ROUTE_FAQ = "3"
ROUTE_BOOK_TOW = "4"

class AutomationClient:
    """
    Transport layer for the automation webhook.
    Payload structure: { "route": "1".."4", "data1": "...", "data2": "..." }
    Never raises and never retries; every outcome comes back as a ToolResult.
    """
    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.webhook_url = webhook_url or config.AUTOMATION_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else config.get("automation.timeout_s", 10.0)
        self.transport = transport
        self.headers = {"Content-Type": "application/json"}

    async def post(self, route: str, data1: str, data2: str) -> ToolResult:
        payload = {"route": route, "data1": data1, "data2": data2}

        if not self.webhook_url:
            logger.error(f"❌ Automation webhook URL not configured, dropping route {route}")
            return ToolResult.error_result("NOT_CONFIGURED", "Automation webhook URL is not set")

        logger.info(f"📤 Automation request route={route}")
        logger.debug(f"📤 Automation payload: {payload}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json=payload,
                    headers=self.headers
                )

                logger.info(f"📥 Automation response status: {response.status_code} (route={route})")

                if response.is_success:
                    text = response.text
                    try:
                        data = response.json()
                    except ValueError:
                        data = None

                    if isinstance(data, dict):
                        return ToolResult.success_result(data=data)

                    # Plain text (or empty) 2xx body; callers decide whether that is usable
                    logger.warning(f"⚠️ Automation route {route} returned a non-JSON body: {text[:200]!r}")
                    return ToolResult.success_result(
                        data={"text_response": text},
                        meta={"parsed": False}
                    )

                logger.error(f"❌ Automation returned status {response.status_code}: {response.text[:200]}")
                return ToolResult.error_result(
                    "UPSTREAM_ERROR",
                    f"Automation webhook returned {response.status_code}",
                    retryable=response.status_code >= 500
                )

        except httpx.TimeoutException:
            logger.error(f"❌ Automation request timed out (route={route})")
            return ToolResult.error_result("TIMEOUT", "Request to automation webhook timed out", retryable=True)

        except Exception as e:
            logger.exception(f"❌ Automation client error (route={route})")
            return ToolResult.error_result("TRANSPORT_ERROR", str(e))

    async def fetch_first_message(self, caller_number: str) -> ToolResult:
        return await self.post(ROUTE_GREETING, caller_number, "empty")

    async def send_transcript(self, caller_number: str, transcript: str) -> ToolResult:
        return await self.post(ROUTE_TRANSCRIPT, caller_number, transcript)

    async def ask_question(self, question: str, thread_id: str) -> ToolResult:
        return await self.post(ROUTE_FAQ, question, thread_id)

    async def book_tow(self, caller_number: str, address: str) -> ToolResult:
        return await self.post(ROUTE_BOOK_TOW, caller_number, address)

@lru_cache(maxsize=1)
def get_automation_client() -> AutomationClient:
    return AutomationClient()
