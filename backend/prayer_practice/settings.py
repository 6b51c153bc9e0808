from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	# Any OpenAI-compatible provider exposing /chat/completions, /audio/transcriptions and /audio/speech
	openai_base_url: str = Field(default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL")
	openai_chat_model: str = Field(default="gpt-4o", validation_alias="OPENAI_CHAT_MODEL")
	openai_transcription_model: str = Field(default="whisper-1", validation_alias="OPENAI_TRANSCRIPTION_MODEL")
	openai_tts_model: str = Field(default="tts-1-hd", validation_alias="OPENAI_TTS_MODEL")
	# Applies to every provider call; a timeout is reported as a transport failure
	openai_timeout_seconds: float = Field(default=30.0, validation_alias="OPENAI_TIMEOUT_SECONDS")

	# Practice defaults when the learner has not chosen yet
	default_language: str = Field(default="en", validation_alias="PRACTICE_DEFAULT_LANGUAGE")
	default_tradition: str = Field(default="Non-denominational", validation_alias="PRACTICE_DEFAULT_TRADITION")
	default_voice: str = Field(default="nova", validation_alias="PRACTICE_DEFAULT_VOICE")

	# Audio: captures and synthesized clips are written here
	audio_dir: str = Field(default="./audio", validation_alias="PRACTICE_AUDIO_DIR")
	sample_rate: int = Field(default=44100, validation_alias="PRACTICE_SAMPLE_RATE")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
