"""
Configuration settings for AgentDeck.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "AgentDeck"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Workflow Engine
    DEFAULT_DELAY_MS: int = 1000
    AGENT_TIMEOUT: float = 120.0  # Seconds per agent invocation
    PROGRESS_QUEUE_SIZE: int = 64

    # Agents
    AGENTS_DIR: Optional[str] = None
    SESSION_AGENT_NAMES: List[str] = ["browser-agent"]

    # Browser sessions
    BROWSER_HEADLESS: bool = True
    BROWSER_SLOW_MO: int = 50

    # LLM endpoint (OpenAI-compatible)
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_API_KEY: Optional[str] = None
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOOL_ROUNDS: int = 5

    # Tools
    TAVILY_API_KEY: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
