"""
Pydantic models for tenant directory objects.

These are returned by a DirectoryProvider and consumed by the identity
analyzers. Like the resource inventory they are read-only snapshots.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class DirectoryUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    user_principal_name: str = ""
    user_type: str = Field("Member", description="Member or Guest")
    account_enabled: bool = True
    last_sign_in: Optional[datetime] = None
    created_date: Optional[datetime] = None


class DirectoryDevice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    operating_system: str = ""
    account_enabled: bool = True
    is_compliant: Optional[bool] = None
    is_managed: Optional[bool] = None
    approximate_last_sign_in: Optional[datetime] = None


class ApplicationCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_id: str
    credential_type: str = Field("password", description="password or certificate")
    end_date: Optional[datetime] = None


class EnterpriseApplication(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    app_id: str = ""
    display_name: str = ""
    credentials: Tuple[ApplicationCredential, ...] = ()
    permissions: Tuple[str, ...] = Field((), description="Granted application permissions")
    owners: Tuple[str, ...] = ()


class ConditionalAccessPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    state: str = Field("enabled", description="enabled, disabled or enabledForReportingButNotEnforced")
    include_users: Tuple[str, ...] = ()
    exclude_users: Tuple[str, ...] = ()
    client_app_types: Tuple[str, ...] = ()
    grant_controls: Tuple[str, ...] = Field((), description="e.g. mfa, block, compliantDevice")


class RoleAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    principal_id: str
    principal_name: str = ""
    principal_type: str = Field("User", description="User, Group or ServicePrincipal")
    is_guest: bool = False
    role_definition_name: str
    scope: str
    is_custom_role: bool = False
    role_actions: Tuple[str, ...] = ()


class DirectorySnapshot(BaseModel):
    """All directory objects visible for one tenant"""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = ""
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    users: Tuple[DirectoryUser, ...] = ()
    devices: Tuple[DirectoryDevice, ...] = ()
    applications: Tuple[EnterpriseApplication, ...] = ()
    conditional_access_policies: Tuple[ConditionalAccessPolicy, ...] = ()
    role_assignments: Tuple[RoleAssignment, ...] = ()
