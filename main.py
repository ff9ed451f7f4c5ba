import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables from .env
from dotenv import load_dotenv
load_dotenv()

from heimdr.api.v1.api import api_router
from heimdr.database import engine, Base
from heimdr.logging_config import configure_logging
from heimdr.models import Email, GmailToken, OutlookToken

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Heimdr",
    description="Phishing risk classification for connected Gmail and Outlook inboxes",
    version="1.0.0"
)

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
