"""Configuration management for the Reflect chat study API."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Execution mode
APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
SHUTDOWN_DRAIN_SECONDS = float(os.getenv("SHUTDOWN_DRAIN_SECONDS", "10"))

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Conversation Configuration
CHAT_DURATION_MS = int(os.getenv("CHAT_DURATION_MS", str(5 * 60 * 1000)))
MAX_SESSION_SECONDS = CHAT_DURATION_MS / 1000

# Model Configuration
LLM_MODEL = os.getenv("LLM_MODEL", "llama-3.1-8b-instant")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "25"))  # stays under a 30s platform ceiling
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "150"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# Storage Configuration
DATA_DIR = os.getenv("DATA_DIR", "data")
STORAGE_WRITE_THROUGH = os.getenv(
    "STORAGE_WRITE_THROUGH",
    "false" if IS_PRODUCTION else "true"
).strip().lower() in {"1", "true", "yes", "on"}

SYSTEM_PROMPT = (
    "You are an AI assistant facilitating a conversation about climate change. "
    "Your role is to engage thoughtfully and ask follow-up questions to help the "
    "participant explore their views. Do not try to persuade or change their mind - "
    "instead, focus on understanding their perspective and encouraging reflection. "
    "Keep responses conversational and under 150 words."
)

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
