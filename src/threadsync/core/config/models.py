"""
Configuration data models for threadsync.

These models define the structure of .threadsync.json and
~/.config/threadsync/config.json files, with validation via Pydantic.
"""

from pydantic import BaseModel, ConfigDict, Field


class IdentityConfig(BaseModel):
    """
    Commit identity for the synchronized repository.

    Only written when the repository has no user.name / user.email of its own,
    so commits work even without a global git config.
    """

    name: str = Field(
        default="Threadline",
        min_length=1,
        description="Value for git user.name when unset",
    )
    email: str = Field(
        default="threadline@localhost",
        min_length=1,
        description="Value for git user.email when unset",
    )


class SyncConfig(BaseModel):
    """
    Top-level threadsync configuration.

    Example:
        >>> config = SyncConfig(wait_time_seconds=5)
        >>> config.wait_time_ms
        5000
    """

    model_config = ConfigDict(extra="ignore")

    wait_time_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Quiet period after the last change before pulling and pushing",
    )
    command_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Kill any single git command running longer than this",
    )
    log_capacity: int = Field(
        default=200,
        ge=1,
        description="Number of transport log entries kept in memory",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="How often `threadsync watch` checks the working tree",
    )
    identity: IdentityConfig = Field(default_factory=IdentityConfig)

    @property
    def wait_time_ms(self) -> int:
        return int(self.wait_time_seconds * 1000)
