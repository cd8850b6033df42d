"""
Pydantic models for sink parameters and export job files.
Provides validation with clear error messages for open-time configuration.
"""

from __future__ import annotations
from typing import Any, List, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from export_sink.core.errors import ConfigError
from export_sink.core.models import ProjectionColumn, ProjectionType

PARQUET_FORMAT = "parquet"
DEFAULT_DELIMITER = "\t"
DEFAULT_REGION = "us-east-1"

_FORBIDDEN_DELIMITERS = {'"', "\r", "\n"}


def _format_errors(e: ValidationError) -> List[str]:
    messages = []
    for error in e.errors():
        field_path = ".".join(str(loc) for loc in error["loc"]) or "<root>"
        messages.append(f"  {field_path}: {error['msg']}")
    return messages


class SinkConfig(BaseModel):
    """Open-time configuration of an S3 export sink."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    format: Any = Field(None, description="Output format: 'parquet' or anything else for CSV")
    delimiter: str = Field(DEFAULT_DELIMITER, description="CSV field separator")
    assume_role_arn: Optional[str] = Field(None, alias="assumeRoleArn", description="Role to assume before writing")
    acl: Optional[str] = Field(None, description="Canned object ACL")
    sse_kms_key_id: Optional[str] = Field(None, alias="sseKmsKeyId", description="KMS key id for SSE-KMS")
    region: Optional[str] = Field(None, description="Target region")

    @field_validator("delimiter", mode="before")
    @classmethod
    def validate_delimiter(cls, v):
        if v is None:
            return DEFAULT_DELIMITER
        if not isinstance(v, str) or not v:
            raise ValueError("delimiter must be a non-empty string")
        # only the first character is used
        v = v[0]
        if v in _FORBIDDEN_DELIMITERS:
            raise ValueError("delimiter cannot be a quote or a line break")
        return v

    @field_validator("assume_role_arn", "acl", "sse_kms_key_id", "region", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_parquet(self) -> bool:
        return self.format == PARQUET_FORMAT

    def resolved_region(self) -> str:
        return self.region or DEFAULT_REGION

    def upload_extra_args(self) -> dict:
        """Object-level ACL and server-side-encryption arguments for the put request."""
        extra = {}
        if self.acl:
            extra["ACL"] = self.acl
        if self.sse_kms_key_id:
            extra["ServerSideEncryption"] = "aws:kms"
            extra["SSEKMSKeyId"] = self.sse_kms_key_id
        return extra

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "SinkConfig":
        """
        Validate a raw parameter mapping (wire names) into a SinkConfig.

        Raises:
            ConfigError: If any parameter is invalid.
        """
        if isinstance(params, SinkConfig):
            return params
        try:
            return cls.model_validate(dict(params or {}))
        except ValidationError as e:
            raise ConfigError("Invalid sink parameters:\n" + "\n".join(_format_errors(e))) from e


class ProjectionColumnConfig(BaseModel):
    """One projected column in an export job file."""

    name: str = Field(..., min_length=1, description="Output column name")
    type: ProjectionType = Field(ProjectionType.STRING, description="Projected value type")

    def to_column(self) -> ProjectionColumn:
        return ProjectionColumn(name=self.name, type=self.type)


class ExportJobConfig(BaseModel):
    """Root configuration model for a command line export."""

    destination: str = Field(..., description="s3://bucket/key of the exported object")
    params: SinkConfig = Field(default_factory=SinkConfig)
    projection: List[ProjectionColumnConfig] = Field(..., min_length=1)
    input: str = Field(..., description="Path to a JSON Lines file of rows")

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v):
        if not v.lower().startswith("s3://"):
            raise ValueError("destination must be an s3:// path")
        return v

    @field_validator("projection")
    @classmethod
    def validate_unique_columns(cls, v):
        names = [c.name for c in v]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate projection columns: {dupes}")
        return v

    def projection_columns(self) -> List[ProjectionColumn]:
        return [c.to_column() for c in self.projection]


def load_and_validate_config(config_path: str) -> ExportJobConfig:
    """
    Load and validate an export job configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated ExportJobConfig object

    Raises:
        ValueError: If configuration is invalid or YAML is malformed
        FileNotFoundError: If config file doesn't exist
    """
    import yaml

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")

    try:
        return ExportJobConfig(**(raw_config or {}))
    except ValidationError as e:
        raise ValueError(
            f"Configuration validation failed for {config_path}:\n" + "\n".join(_format_errors(e))
        )
