# Chunking
DEFAULT_CHUNK_SIZE = 5
MAX_CHUNK_SIZE = 50

# Chunk readiness wait (bounded poll, then degrade)
DEFAULT_CHUNK_WAIT_SECONDS = 60.0
DEFAULT_CHUNK_POLL_SECONDS = 1.0

# Routing thresholds (percent correctness)
REMEDIATION_THRESHOLD = 10  # at or below: remediation follow-up
DEPTH_THRESHOLD = 50  # at or above: depth follow-ups (lowered from the model's own 80)
MODEL_DEPTH_THRESHOLD = 80  # threshold the grading prompt hands to the model
FALLBACK_SCORE = 50

# Primary queue shaping
NON_TECHNICAL_QUOTA = 0.20
TOPIC_PREFIX_LENGTH = 20

# Interview defaults
DEFAULT_DURATION_MINUTES = 60
DEFAULT_MODEL_ID = "google:gemini-2.0-flash"
DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "alloy"

# Retry budget for overloaded providers
DEFAULT_MAX_RETRIES = 3

# Default Paths
DEFAULT_DB_PATH = "interview_engine.db"
AUDIO_KEY_TEMPLATE = "interviews/technical/{session_id}/audio/"

# Placeholder used when no reference answer can be produced for grading
NO_REFERENCE_ANSWER = "No ideal answer available"
UNABLE_TO_EVALUATE = "Unable to evaluate"

# Console input: typing one of these ends the interview early
EXIT_SIGNAL = "__EXIT_INTERVIEW__"
EXIT_COMMANDS = {"exit", "quit", "done"}
