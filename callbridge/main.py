import logging
import uvicorn
from fastapi import FastAPI
from callbridge.config.environment import config
from callbridge.utils.logging_setup import setup_logging
from callbridge.telephony.inbound import router as inbound_router
from callbridge.telephony.media_stream import router as media_router

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(title="Twilio Media Stream Server")

# Include Routers
app.include_router(inbound_router)
app.include_router(media_router)

@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting Twilio Media Stream Server...")
    config.validate()
    logger.info(f"🔗 Automation webhook: {config.AUTOMATION_WEBHOOK_URL}")
    logger.info(f"🌍 Listening on port {config.PORT}")

def run():
    uvicorn.run("callbridge.main:app", host="0.0.0.0", port=config.PORT)

if __name__ == "__main__":
    run()
