import logging
from fastapi import APIRouter, Request, Response
from twilio.twiml.voice_response import VoiceResponse, Connect
from callbridge.config.environment import config
from callbridge.core.session_store import get_session_registry
from callbridge.tools.automation_client import AutomationClient, get_automation_client

router = APIRouter()
logger = logging.getLogger(__name__)

async def resolve_first_message(client: AutomationClient, caller_number: str) -> str:
    """
    Personalised greeting for the caller, or the default one when the lookup fails.
    A plain-text answer from the automation is used as the greeting itself.
    """
    first_message = config.get("messages.default_greeting")

    result = await client.fetch_first_message(caller_number)
    if not result.success:
        logger.error(f"❌ Greeting lookup failed: {result.error.message}")
        return first_message

    if result.parsed:
        if result.data.get("firstMessage"):
            first_message = result.data["firstMessage"]
            logger.info(f"💬 Parsed firstMessage from automation: {first_message}")
    else:
        text = (result.data.get("text_response") or "").strip()
        if text:
            first_message = text

    return first_message

@router.get("/")
async def root():
    return {"message": "Twilio Media Stream Server is running!"}

@router.api_route("/incoming-call", methods=["GET", "POST"])
async def incoming_call(request: Request):
    """
    Handle an incoming Twilio call.
    Looks up the greeting, registers the session and connects the call to /media-stream.
    """
    logger.info("📞 Incoming call")

    twilio_params = dict(request.query_params)
    if request.method == "POST":
        try:
            form_data = await request.form()
            twilio_params.update(form_data)
        except Exception:
            logger.warning("Could not parse form data")

    logger.info(f"Twilio Inbound Details: {twilio_params}")

    caller_number = twilio_params.get("From") or "Unknown"
    call_sid = twilio_params.get("CallSid")
    logger.info(f"📞 Caller Number: {caller_number} | Session ID (CallSid): {call_sid}")

    first_message = await resolve_first_message(get_automation_client(), caller_number)

    if call_sid:
        get_session_registry().create(
            call_sid,
            caller_number=caller_number,
            first_message=first_message,
            call_details=twilio_params
        )
    else:
        logger.warning("⚠️ Incoming call without CallSid, session will be created on stream start")

    # Build TwiML with Media Stream
    resp = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=f"wss://{request.headers.get('host')}/media-stream")
    stream.parameter(name="firstMessage", value=first_message)
    stream.parameter(name="callerNumber", value=caller_number)
    resp.append(connect)

    return Response(content=str(resp), media_type="text/xml")
