import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Relational store
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
TRACKS_TABLE = os.getenv("TRACKS_TABLE", "tracks")

# Chat completion provider
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o")
ANALYSIS_MODEL = os.getenv("ANALYSIS_MODEL", "gpt-4")

# Text embedding model (CLAP text tower)
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "laion/larger_clap_music_and_speech")
MODEL_CACHE_DIR = os.getenv("MODEL_CACHE_DIR", "model_cache/larger_clap")

DEFAULT_TARGET_SIZE = int(os.getenv("DEFAULT_TARGET_SIZE", "24"))

PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
