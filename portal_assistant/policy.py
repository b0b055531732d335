"""
Policy Module (Centralized Timeouts, Capacities & Defaults)

Constants only. No side effects. No imports from other portal_assistant modules.
"""

# TTS timeouts
TTS_TIMEOUT_SECONDS = 10

# Audio playback polling / timeouts
AUDIO_POLL_INTERVAL_SECONDS = 0.05
AUDIO_PLAYBACK_TIMEOUT_SECONDS = 120

# Session memory
SESSION_MEMORY_CAPACITY = 20

# Proactive suggestion (user idle delay)
SUGGESTION_DELAY_MS = 4000

# Entity extraction defaults (used when the utterance does not say)
DEFAULT_APPOINTMENT_TIME = "14:00"
DEFAULT_APPOINTMENT_REASON = "General"
DEFAULT_DOSAGE = "1 tablet"
DEFAULT_FREQUENCY = "once daily"
DEFAULT_DOCUMENT_TYPE = "general"

# Fallback responses
EMPTY_INPUT_RESPONSE = "Please enter a command."
PIPELINE_FAILURE_RESPONSE = "Sorry, I couldn't process that request."
