# src/owner_transfer/settings.py
import re
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from owner_transfer.engine import TransferConfig
from owner_transfer.errors import ConfigurationError

VALID_MODES = ["local-dev", "aws-mock", "aws-prod"]

# Queue keys name files and S3 objects verbatim
QUEUE_KEY_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


class Settings(BaseSettings):
    """
    Single source of truth for all transfer settings.

    Configuration precedence:
    1. Keyword arguments (highest priority)
    2. Environment variables
    3. .env file (if exists)
    4. Default values in this class (lowest priority)

    Usage:
        from owner_transfer.settings import get_settings
        settings = get_settings()
        config = settings.transfer_config()
    """

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    # Local Storage Configuration
    storage_dir: str = Field(
        default="storage",
        description="Local directory for checkpoints and pending schedules"
    )

    tree_manifest: Optional[str] = Field(
        default=None,
        description="JSON manifest describing the local-dev item tree"
    )

    # Drive API
    drive_api_base_url: str = Field(
        default="https://www.googleapis.com/drive/v3",
        description="Base URL of the Drive REST API"
    )

    drive_access_token: Optional[str] = Field(
        default=None,
        description="OAuth bearer token with domain-wide Drive access"
    )

    drive_use_domain_admin_access: bool = Field(
        default=True,
        description="Issue permission calls as a Workspace domain administrator"
    )

    drive_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for Drive API calls"
    )

    # Checkpoint store (S3)
    checkpoint_bucket: str = Field(
        default="owner-transfer-checkpoints",
        description="S3 bucket holding queue checkpoints"
    )

    checkpoint_prefix: str = Field(
        default="checkpoints/",
        description="Key prefix for checkpoint objects"
    )

    # Scheduler (EventBridge Scheduler)
    scheduler_target_arn: Optional[str] = Field(
        default=None,
        description="ARN of the Lambda function that runs the next slice"
    )

    scheduler_role_arn: Optional[str] = Field(
        default=None,
        description="IAM role EventBridge Scheduler assumes to invoke the target"
    )

    scheduler_group: str = Field(
        default="default",
        description="EventBridge Scheduler group for one-shot schedules"
    )

    # Transfer
    root_ids: str = Field(
        default="",
        description="Comma separated root item identifiers"
    )

    current_owner: Optional[str] = Field(
        default=None,
        description="Principal whose items are transferred"
    )

    new_owner: Optional[str] = Field(
        default=None,
        description="Principal receiving ownership"
    )

    queue_key: str = Field(
        default="QUEUE_ORIGINAL",
        description="Checkpoint namespace; unique per concurrent transfer"
    )

    slice_budget_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Wall-clock budget of a single slice"
    )

    heartbeat_interval: int = Field(
        default=100,
        gt=0,
        description="Handled items between heartbeat log lines"
    )

    max_heartbeats: int = Field(
        default=20,
        ge=0,
        description="Maximum heartbeat log lines per slice"
    )

    reschedule_delay_seconds: int = Field(
        default=30,
        ge=0,
        description="Delay before the next slice runs"
    )

    lambda_safety_margin_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Time kept in reserve for checkpointing inside Lambda"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('deployment_mode')
    @classmethod
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        if v not in VALID_MODES:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {VALID_MODES}")
        return v

    @field_validator('queue_key')
    @classmethod
    def validate_queue_key(cls, v):
        """Restrict queue keys to characters usable in file and object names."""
        if not QUEUE_KEY_PATTERN.fullmatch(v):
            raise ValueError(
                f"Invalid queue_key: {v!r}. Use letters, digits, '.', '_' or '-'"
            )
        return v

    @model_validator(mode="after")
    def apply_mode_defaults(self):
        """Point local modes at the moto endpoint and mock credentials."""
        if self.deployment_mode == "aws-mock":
            if self.aws_endpoint_url is None:
                self.aws_endpoint_url = "http://localhost:5000"
            if self.aws_access_key_id is None:
                self.aws_access_key_id = "mock"
            if self.aws_secret_access_key is None:
                self.aws_secret_access_key = "mock"
        # aws-prod leaves credentials to the Lambda execution role
        return self

    @property
    def root_id_list(self) -> List[str]:
        return [part.strip() for part in self.root_ids.split(",") if part.strip()]

    @property
    def manifest_path(self) -> str:
        return self.tree_manifest or f"{self.storage_dir}/tree.json"

    def transfer_config(self) -> TransferConfig:
        """Build the immutable configuration handed to the driver and engine."""
        missing = []
        if not self.root_id_list:
            missing.append("ROOT_IDS")
        if not self.current_owner:
            missing.append("CURRENT_OWNER")
        if not self.new_owner:
            missing.append("NEW_OWNER")
        if missing:
            raise ConfigurationError(f"Missing transfer settings: {', '.join(missing)}")

        return TransferConfig(
            root_ids=tuple(self.root_id_list),
            current_owner=self.current_owner,
            new_owner=self.new_owner,
            queue_key=self.queue_key,
            slice_budget_seconds=self.slice_budget_seconds,
            heartbeat_interval=self.heartbeat_interval,
            max_heartbeats=self.max_heartbeats,
            reschedule_delay_seconds=self.reschedule_delay_seconds,
        )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
