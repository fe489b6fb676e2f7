import json
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request, BackgroundTasks
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv

# Import our modules
from callflow.dispatcher import Dispatcher
from callflow.events import EventKind, parse_event
from callflow.nodes.prioritize import derive_priority
from integrations.call_store import build_call_store
from integrations.notifier import LeadNotifier
from integrations.signature import SIGNATURE_HEADER, verify_signature

# Load environment variables
load_dotenv()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

WEBHOOK_SECRET = os.getenv("VAPI_WEBHOOK_SECRET")
if not WEBHOOK_SECRET:
    logger.warning("VAPI_WEBHOOK_SECRET not set, webhook signature verification is disabled")

# Initialize FastAPI app
app = FastAPI(
    title="Vapi Lead Notifier",
    description="Collects lead data from voice AI calls and emails a summary when the call ends",
    version="1.0.0"
)

# Initialize call store, notifier and dispatcher
call_store = build_call_store()
notifier = LeadNotifier()
dispatcher = Dispatcher(call_store, notifier)

SAMPLE_LEAD = {
    "call_id": "test-notification",
    "phone_number": "+15551234567",
    "first_name": "John",
    "last_name": "Doe",
    "email": "john.doe@example.com",
    "company": "Test Inc.",
    "industry": "Technology",
    "employee_count": "10-50",
    "pain_point": "Testing email functionality",
    "timeline": "ASAP",
    "budget": "$10,000",
    "qualification_score": 9,
    "call_outcome": "Demo scheduled",
    "next_steps": "Send follow-up email",
    "notes": "This is a test call summary.",
    "duration": 120
}

@app.post("/webhook/vapi")
async def vapi_webhook(req: Request, background_tasks: BackgroundTasks):
    """
    Main webhook endpoint for Vapi server messages.

    Expected payload:
    {
        "message": {
            "type": "call-started" | "call-ended" | "function-call" | ...,
            "call": {"id": "...", "customer": {"number": "+1..."}},
            "functionCall": {"name": "capture_lead_info", "parameters": {...}}
        }
    }
    """
    raw = await req.body()

    if not verify_signature(raw, req.headers.get(SIGNATURE_HEADER), WEBHOOK_SECRET):
        logger.warning("Rejected webhook with invalid signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        logger.warning("Webhook body is not valid JSON, acknowledging without processing")
        return JSONResponse(status_code=200, content={"received": True})

    event = parse_event(payload)

    try:
        result = dispatcher.handle_event(event, defer=background_tasks.add_task)
    except Exception:
        logger.exception(f"Webhook processing failed for call {event.call_id} ({event.type})")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return JSONResponse(status_code=result.status_code, content=result.body)

@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

@app.post("/test-notification")
def test_notification():
    """Send a lead email built from fixed sample data."""
    priority = derive_priority(SAMPLE_LEAD["qualification_score"])
    sent = notifier.notify(dict(SAMPLE_LEAD), priority)
    return {"sent": sent, "priority": priority}

# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    port = int(os.getenv("PORT", "3000"))
    logger.info(f"Starting Vapi Lead Notifier on port {port}")
    logger.info(f"Handled event kinds: {', '.join(kind.value for kind in EventKind)}")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
