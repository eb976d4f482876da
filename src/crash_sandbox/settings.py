"""Runtime configuration from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from crash_sandbox import constants


class HarnessSettings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with CRASH_SANDBOX_ prefix.
    Example: CRASH_SANDBOX_READINESS_HANDSHAKE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="CRASH_SANDBOX_",
        extra="ignore",
    )

    # Timing
    grace_delay_seconds: float = Field(default=constants.DEFAULT_GRACE_DELAY_SECONDS, ge=0)
    subject_sleep_seconds: float = Field(default=constants.DEFAULT_SUBJECT_SLEEP_SECONDS, gt=0)
    readiness_handshake: bool = False
    """Block on a readiness token from the subject instead of sleeping before
    external delivery."""

    # Capture
    read_buffer_size: int = Field(default=constants.READ_BUFFER_SIZE, ge=1)

    # Subject
    install_handler: bool = True
    """False runs every scenario without the handler (negative configuration)."""
    disable_core_dumps: bool = True
    """Set RLIMIT_CORE to 0 in subjects so crashing scenarios leave no core files."""
