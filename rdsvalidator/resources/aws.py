"""
AWS session and client construction.
"""

import logging
from typing import Any, Dict, Optional

import boto3
import botocore.exceptions
from botocore.client import BaseClient

from ..config.settings import CloudSettings
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class AWSClients:
    """Lazily created EC2 and RDS clients sharing one boto3 session."""

    def __init__(self, settings: CloudSettings, session: Optional[boto3.Session] = None):
        self.settings = settings
        self._session = session
        self._clients: Dict[str, BaseClient] = {}

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    @property
    def ec2(self) -> Any:
        return self._client("ec2")

    @property
    def rds(self) -> Any:
        return self._client("rds")

    def _client(self, service: str) -> Any:
        if service not in self._clients:
            self._clients[service] = self.session.client(service)
        return self._clients[service]

    def _create_session(self) -> boto3.Session:
        """Create the boto3 session from settings, falling back to the default chain."""
        session_kwargs: Dict[str, Any] = {"region_name": self.settings.aws_region}

        if self.settings.aws_profile:
            session_kwargs["profile_name"] = self.settings.aws_profile
        if self.settings.aws_access_key_id:
            session_kwargs["aws_access_key_id"] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = (
                self.settings.aws_secret_access_key
            )
        if self.settings.aws_session_token:
            session_kwargs["aws_session_token"] = self.settings.aws_session_token

        try:
            session = boto3.Session(**session_kwargs)
        except botocore.exceptions.ProfileNotFound as e:
            raise ConfigurationError(f"AWS profile not found: {e}")

        logger.info(f"AWS session initialized for region: {session.region_name}")
        return session
