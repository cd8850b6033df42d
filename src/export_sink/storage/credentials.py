"""
Credential resolution for export sinks.

Without a role the caller's session (the ambient provider chain) is used as is.
With a role, the session's identity assumes it through STS and the temporary
credentials are served by a refreshing provider scoped to a fresh botocore
session that keeps the caller's region and profile, so no credential state
is shared between sinks. Either way the credentials are retrieved once when
the sink opens, surfacing failures there instead of at the first write. The
expiry is only known for assumed roles.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import boto3
import botocore.session
from botocore.credentials import CredentialProvider, RefreshableCredentials
from botocore.exceptions import BotoCoreError, ClientError

from export_sink.core.errors import CredentialError
from export_sink.utils.logging import get_logger, mask

DEFAULT_DURATION_S = 3600

log = get_logger("export_sink.credentials")


@dataclass(frozen=True)
class ResolvedCredentials:
    """Snapshot of the credentials a sink writes with. Never persisted."""

    role_arn: Optional[str]
    access_key: str
    secret_key: str
    session_token: Optional[str] = None
    expiry: Optional[datetime] = None

    def __repr__(self) -> str:
        return (
            f"ResolvedCredentials(role_arn={self.role_arn!r}, access_key={mask(self.access_key)!r}, "
            f"expiry={self.expiry!r})"
        )


class AssumeRoleProvider(CredentialProvider):
    """Credential provider backed by sts:AssumeRole, refreshed before expiry."""

    METHOD = "export-sink-assume-role"
    CANONICAL_NAME = "ExportSinkAssumeRole"

    def __init__(
        self,
        sts_client: Any,
        role_arn: str,
        session_name: Optional[str] = None,
        duration_s: int = DEFAULT_DURATION_S,
    ):
        super().__init__()
        self.sts_client = sts_client
        self.role_arn = role_arn
        self.session_name = session_name or f"export-sink-{uuid.uuid4().hex[:12]}"
        self.duration_s = duration_s
        self.expiry: Optional[datetime] = None

    def fetch(self) -> Dict[str, str]:
        """Run the role assumption and return credential metadata."""
        try:
            resp = self.sts_client.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=self.session_name,
                DurationSeconds=self.duration_s,
            )
        except (ClientError, BotoCoreError) as e:
            raise CredentialError(f"Failed to assume role {self.role_arn}: {e}") from e

        creds = resp["Credentials"]
        expiration = creds["Expiration"]
        self.expiry = expiration if isinstance(expiration, datetime) else None
        log.info(
            "Assumed role %s (access key %s, expires %s)",
            self.role_arn,
            mask(creds["AccessKeyId"]),
            expiration,
        )
        return {
            "access_key": creds["AccessKeyId"],
            "secret_key": creds["SecretAccessKey"],
            "token": creds["SessionToken"],
            "expiry_time": expiration.isoformat() if isinstance(expiration, datetime) else str(expiration),
        }

    def load(self) -> RefreshableCredentials:
        return RefreshableCredentials.create_from_metadata(
            metadata=self.fetch(),
            refresh_using=self.fetch,
            method=self.METHOD,
        )


def resolve_session(
    role_arn: Optional[str], session: Optional[boto3.Session] = None
) -> Tuple[boto3.Session, ResolvedCredentials]:
    """
    Return the session a sink builds its storage client from, with the
    credentials it resolved to.

    Args:
        role_arn: Optional role to assume. Empty means ambient credentials.
        session: Base session providing the ambient chain, region and profile.
            Defaults to a new boto3.Session().

    Raises:
        CredentialError: If the role assumption or the first retrieval fails.
    """
    base = session or boto3.Session()
    if not role_arn:
        log.debug("No role to assume, using ambient credentials")
        return base, snapshot_credentials(base)

    try:
        sts = base.client("sts")
    except (BotoCoreError, ClientError) as e:
        raise CredentialError(f"Failed to create STS client: {e}") from e

    provider = AssumeRoleProvider(sts, role_arn)
    scoped = botocore.session.Session()
    scoped.get_component("credential_provider").insert_before("env", provider)
    profile = base.profile_name if base.profile_name != "default" else None
    resolved = boto3.Session(botocore_session=scoped, region_name=base.region_name, profile_name=profile)

    snapshot = snapshot_credentials(resolved, role_arn)
    return resolved, replace(snapshot, expiry=provider.expiry)


def snapshot_credentials(session: boto3.Session, role_arn: Optional[str] = None) -> ResolvedCredentials:
    """
    Retrieve the session's credentials once.

    Raises:
        CredentialError: If no credentials can be retrieved.
    """
    try:
        creds = session.get_credentials()
        if creds is None:
            raise CredentialError("No credentials could be resolved for the export")
        frozen = creds.get_frozen_credentials()
    except (BotoCoreError, ClientError) as e:
        raise CredentialError(f"Failed to retrieve credentials: {e}") from e

    return ResolvedCredentials(
        role_arn=role_arn,
        access_key=frozen.access_key,
        secret_key=frozen.secret_key,
        session_token=frozen.token,
    )
