from sqlalchemy import Boolean, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from agentloop.models.base import AuditMixin, Base


class ProviderKey(Base, AuditMixin):
    """Per-install API key for a model provider (self-hosted mode only)."""

    __tablename__ = "provider_keys"

    provider_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    api_key: Mapped[str] = mapped_column(Text, server_default="", nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, server_default=true(), nullable=False)


class TeamCredential(Base, AuditMixin):
    """Third-party service credential used by skill handlers.

    Values are plaintext; access control is enforced at the API layer.
    """

    __tablename__ = "team_credentials"

    team_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    service_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
