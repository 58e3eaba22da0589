"""
Pydantic models for Advertising API account data.

Profiles identify an advertiser within a marketplace; every campaign API
call is scoped to one. Manager accounts group profiles that belong to the
same business.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_id(value: Any) -> Any:
    # The API returns numeric ids for some accounts and strings for others
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class AccountInfo(BaseModel):
    """
    Account behind a profile.

    Attributes:
        id: Account identifier (entity or marketplace string id)
        type: Account type ("seller", "vendor", "agency")
        name: Account display name
        valid_payment_method: Whether the account can be billed (sellers only)
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    name: str
    valid_payment_method: Optional[bool] = Field(None, alias="validPaymentMethod")

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> Any:
        return _coerce_id(v)


class Profile(BaseModel):
    """
    Advertising profile returned by ``GET /v2/profiles``.

    Example:
        >>> Profile.model_validate({
        >>>     "profileId": 3401234567890,
        >>>     "countryCode": "US",
        >>>     "currencyCode": "USD",
        >>>     "timezone": "America/Los_Angeles",
        >>>     "accountInfo": {"id": "A1B2C3", "type": "seller", "name": "Shop"},
        >>> })
    """

    model_config = ConfigDict(populate_by_name=True)

    profile_id: str = Field(..., alias="profileId")
    country_code: str = Field(..., alias="countryCode")
    currency_code: str = Field(..., alias="currencyCode")
    timezone: str
    account_info: AccountInfo = Field(..., alias="accountInfo")

    @field_validator("profile_id", mode="before")
    @classmethod
    def profile_id_to_str(cls, v: Any) -> Any:
        return _coerce_id(v)


class LinkedAccount(BaseModel):
    """Profile linked to a manager account."""

    model_config = ConfigDict(populate_by_name=True)

    profile_id: str = Field(..., alias="profileId")
    account_id: str = Field(..., alias="accountId")
    account_name: str = Field(..., alias="accountName")
    marketplace_id: str = Field(..., alias="marketplaceId")

    @field_validator("profile_id", "account_id", mode="before")
    @classmethod
    def ids_to_str(cls, v: Any) -> Any:
        return _coerce_id(v)


class ManagerAccount(BaseModel):
    """Manager account grouping several advertising accounts."""

    model_config = ConfigDict(populate_by_name=True)

    manager_account_id: str = Field(..., alias="managerAccountId")
    manager_account_name: str = Field(..., alias="managerAccountName")
    linked_accounts: List[LinkedAccount] = Field(default_factory=list, alias="linkedAccounts")


class ManagerAccountsResponse(BaseModel):
    """Response wrapper for ``GET /managerAccounts``."""

    model_config = ConfigDict(populate_by_name=True)

    manager_accounts: List[ManagerAccount] = Field(
        default_factory=list, alias="managerAccounts"
    )
