"""
Configuration for dirauth.

Reads from environment variables (prefix DIRAUTH_) with sensible defaults.
List and mapping values are JSON, e.g.

    DIRAUTH_SERVERS='["dc1.corp.local", "dc2.corp.local"]'
    DIRAUTH_REFUSE_LOGIN='["CN=Contractors,OU=Groups,DC=corp,DC=local"]'
    DIRAUTH_ROLES_MAP='{"Sales": "sales-team"}'
"""

from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_prefix="DIRAUTH_")

    # Directory servers
    servers: List[str] = ["localhost"]
    port: Optional[int] = None
    use_ssl: bool = False
    verify_certificate: bool = True
    ca_certificate: Optional[str] = None
    connection_timeout: int = 10

    # Directory layout
    base_dn: str = ""
    domain: str = ""   # e-mail domain stripped from logins
    fqdn: str = ""     # bind domain appended to logins, defaults to domain
    page_size: int = 500

    # Group based policy. None means "not configured".
    allow_login: Optional[List[str]] = None
    refuse_login: Optional[List[str]] = None
    admin_groups: Optional[List[str]] = None
    roles_map: Optional[Dict[str, str]] = None
    load_roles_as_mail_groups: bool = False
    load_groups: Optional[bool] = None

    # Enrichment handlers
    load_thumbnail: bool = False
    user_attributes: Optional[Dict[str, str]] = None
    nested_group_workers: int = 1

    # Logging
    log_level: str = "INFO"


settings = Settings()
