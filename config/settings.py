"""Central Configuration for the Sentient Guide conversation core."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Base Directory (Root of the project)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load Environment Variables
load_dotenv(BASE_DIR / ".env")

# LLM Settings
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
MODEL_TEMPERATURE = 0.7
MODEL_MAX_OUTPUT_TOKENS = 800
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "30"))
MAX_TOOL_ROUNDS = 3
MODEL_CALL_WORKERS = int(os.getenv("MODEL_CALL_WORKERS", "8"))

# Paths
CONVERSATION_STORAGE_PATH = BASE_DIR / ".conversations"
CATALOG_PATH = BASE_DIR / "data" / "catalog.json"

# Context Settings
MAX_RECENT_MESSAGES = 10
MAX_MODEL_HISTORY = 8

# Exercise Gate
DECLINE_COOLDOWN_HOURS = 24

# Exercise Facilitation
# Crude substantiveness filter for the closing reflection
REFLECTION_MIN_CHARS = 50
REFLECTION_MIN_WORDS = 10

# Exercise Search Tool
EXERCISE_SEARCH_DEFAULT_LIMIT = 3
EXERCISE_SEARCH_MAX_LIMIT = 5
