"""Global pytest configuration."""

import os

# Force local backends for tests before any settings are loaded
os.environ["REDIS_URL"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GOOGLE_TTS_API_KEY"] = ""
os.environ["LOCATIONIQ_API_KEY"] = ""
os.environ["GOOGLE_MAPS_API_KEY"] = ""
