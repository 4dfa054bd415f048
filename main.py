import asyncio
import logging

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import LOG_LEVEL, SCHEDULER_ENABLED
from app.routes import internal, schedule_mail
from app.utils.errors import AuthorizationError
from app.utils.internal_auth import verify_internal_api_key
from scheduler.email_scheduler import send_scheduled_emails

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI()

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(content={"error": "Unauthorized"}, status_code=401)


# Background trigger for the dispatch worker
@app.on_event("startup")
async def start_scheduler():
    if not SCHEDULER_ENABLED:
        return
    logger.info("🚀 Scheduler task started on app startup")
    app.state.scheduler_task = asyncio.create_task(send_scheduled_emails())


@app.get("/")
def root():
    return {"message": "✅ Scheduled email service running"}


app.include_router(schedule_mail.router)

# Worker routes require the privileged bearer credential
app.include_router(internal.router, dependencies=[Depends(verify_internal_api_key)])

# Dev entry point
if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
