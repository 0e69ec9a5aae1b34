#!/usr/bin/env python3
"""
Main FastAPI application for the chatdesk backend.

Run with: uvicorn chatdesk.app.main:create_app --factory
"""

from datetime import datetime, timezone

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from ..schemas.io_models import MessageOut, SendMessageRequest
from ..utils.logger import get_logger
from ..utils.security import mask_phone

logger = get_logger("api")


def create_app(services=None) -> FastAPI:
    """Create the FastAPI application around an already-built service graph."""
    if services is None:
        from .container import build_services
        services = build_services()

    app = FastAPI(
        title="Chatdesk API",
        description="WhatsApp AI customer service backend",
        version="1.0.0",
    )
    app.state.services = services

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        """Service descriptor."""
        return {
            "service": f"{services.company_name} AI Customer Service",
            "status": "running",
            "endpoints": {
                "health": "/api/health",
                "webhook": "/api/webhook",
                "conversation": "/api/conversation/{phone_number}",
                "send_message": "/api/send-message",
            },
        }

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": f"{services.company_name} AI Customer Service",
        }

    @app.get("/api/webhook")
    async def verify_webhook(
        mode: str = Query(None, alias="hub.mode"),
        token: str = Query(None, alias="hub.verify_token"),
        challenge: str = Query("", alias="hub.challenge"),
    ):
        """WhatsApp subscription handshake."""
        if mode == "subscribe" and services.verify_token and token == services.verify_token:
            logger.info("[WEBHOOK] Webhook verified successfully")
            return PlainTextResponse(challenge)
        logger.warning("[WEBHOOK] Webhook verification failed")
        raise HTTPException(status_code=403, detail="Verification failed")

    @app.post("/api/webhook")
    async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
        """Acknowledge immediately; processing continues in the background."""
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        background_tasks.add_task(services.gateway.handle, payload)
        return {"status": "received"}

    @app.get("/api/conversation/{phone_number}")
    def get_conversation(phone_number: str):
        """Last 50 messages for a phone number (admin/testing)."""
        try:
            messages = services.manager.get_recent_messages(phone_number, 50)
            return {
                "phone_number": phone_number,
                "message_count": len(messages),
                "messages": [MessageOut.model_validate(m).model_dump(mode="json") for m in messages],
            }
        except Exception as e:
            logger.exception("Get conversation history error for %s", mask_phone(phone_number))
            return JSONResponse(status_code=500, content={"error": str(e)})

    @app.post("/api/send-message")
    def send_message(request: SendMessageRequest):
        """Manual message send (admin/testing)."""
        if not request.phone_number or not request.message:
            raise HTTPException(status_code=400, detail="Phone number and message are required")

        if services.messenger.send_text_message(request.phone_number, request.message):
            return {"success": True, "message": "Message sent"}
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to send message"})

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chatdesk.app.main:create_app", factory=True, host="0.0.0.0", port=8000)
