"""
Core Ledger Models for Household Ledger

These models define the strict schemas for the two event streams the
engines consume: Transactions (expense / income / advance) and Settlements.

They are designed to:
1. Enforce the accounting invariants at construction time
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: There are two layers per event.
- *Input models (TransactionInput, SettlementInput) hold raw form values.
  Nothing is guaranteed about them; the validation package turns them
  into field-attributed issues.
- Transaction and Settlement are only ever built from clean data. Their
  model validators reject any invariant violation loudly.

DESIGN DECISION: "The household" as a counterparty is a Party variant,
never a magic user id string.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from household_ledger.models.category import (
    CategoryKey,
    TransactionType,
    is_category_allowed,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Money = Annotated[Decimal, Field(gt=0, decimal_places=2)]


# =============================================================================
# PARTIES - who is on each side of an advance or settlement
# =============================================================================

class MemberParty(BaseModel):
    """A concrete household member."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["member"] = "member"
    user_id: str = Field(..., min_length=1)

    @property
    def is_household(self) -> bool:
        return False


class HouseholdParty(BaseModel):
    """The household as a collective."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["household"] = "household"

    @property
    def is_household(self) -> bool:
        return True

    @property
    def user_id(self) -> None:
        return None


Party = Annotated[Union[MemberParty, HouseholdParty], Field(discriminator="kind")]


def member_party(user_id: str) -> MemberParty:
    return MemberParty(user_id=user_id)


def household_party() -> HouseholdParty:
    return HouseholdParty()


def party_from_user_id(user_id: Optional[str]) -> Union[MemberParty, HouseholdParty]:
    """Map a nullable user id column to a Party (None means the household)."""
    if user_id is None:
        return HouseholdParty()
    return MemberParty(user_id=user_id)


# =============================================================================
# MEMBERSHIP
# =============================================================================

class Member(BaseModel):
    """A household member as seen by the membership directory."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    display_name: Optional[str] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A recorded money movement.

    CRITICAL: For advances, advance_to_user_id=None means the household as
    a whole owes the payer. A concrete id means that member personally
    owes the payer.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    household_id: str = Field(..., min_length=1)

    type: TransactionType
    amount: Money
    occurred_on: date = Field(
        ...,
        description="Civil date the money moved (not when it was recorded)"
    )
    category: CategoryKey
    note: Optional[str] = Field(default=None, max_length=120)

    payer_user_id: Optional[str] = Field(
        default=None,
        description="Member who physically paid (expenses and advances)"
    )
    advance_to_user_id: Optional[str] = Field(
        default=None,
        description="Member who owes the payer; None for household-wide advances"
    )
    recurring_expense_id: Optional[UUID] = Field(
        default=None,
        description="Template this transaction was materialized from, if any"
    )

    # Provenance, never used in balance math
    created_by: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_type_rules(self) -> 'Transaction':
        """Enforce the per-type invariants."""
        if not is_category_allowed(self.category, self.type):
            raise ValueError(
                f"Category '{self.category.value}' cannot be used for "
                f"{self.type.value} transactions"
            )

        if self.type != TransactionType.INCOME and not self.payer_user_id:
            raise ValueError("Expenses and advances require a payer")

        if self.type != TransactionType.ADVANCE and self.advance_to_user_id:
            raise ValueError("Only advances can name a member who owes the payer")

        if (
            self.type == TransactionType.ADVANCE
            and self.advance_to_user_id is not None
            and self.advance_to_user_id == self.payer_user_id
        ):
            raise ValueError("An advance cannot be owed back by its own payer")

        return self

    @property
    def is_advance(self) -> bool:
        return self.type == TransactionType.ADVANCE

    @property
    def is_household_advance(self) -> bool:
        return self.is_advance and self.advance_to_user_id is None

    @property
    def is_targeted_advance(self) -> bool:
        return self.is_advance and self.advance_to_user_id is not None

    @property
    def counterparty(self) -> Union[MemberParty, HouseholdParty, None]:
        """Who owes the payer; None for non-advances."""
        if not self.is_advance:
            return None
        return party_from_user_id(self.advance_to_user_id)


class TransactionInput(BaseModel):
    """
    Raw transaction form values.

    All fields are optional and loosely typed: amounts may arrive as text
    with thousands separators, dates as strings. Use the validation
    package to turn this into a Transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    household_id: str = Field(..., min_length=1)
    type: Optional[str] = None
    amount: Optional[Union[Decimal, int, float, str]] = None
    occurred_on: Optional[Union[date, str]] = None
    category: Optional[str] = None
    note: Optional[str] = None
    payer_user_id: Optional[str] = None
    advance_to_user_id: Optional[str] = None

    # Form shortcut: an expense flagged this way is recorded as a
    # household-wide advance.
    is_household_advance: bool = False

    recurring_expense_id: Optional[UUID] = None


# =============================================================================
# SETTLEMENTS
# =============================================================================

class SettlementDirection(str, Enum):
    """Direction of a settlement from the acting member's point of view."""
    PAY = "pay"
    RECEIVE = "receive"


class Settlement(BaseModel):
    """
    Money actually transferred to clear balances.

    Either side may be the household, but not both.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    household_id: str = Field(..., min_length=1)

    from_party: Party
    to_party: Party
    amount: Money
    settled_on: date
    note: Optional[str] = Field(default=None, max_length=200)

    created_by: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_parties(self) -> 'Settlement':
        """Reject settlements that cannot correspond to a real payment."""
        if self.from_party.is_household and self.to_party.is_household:
            raise ValueError("A settlement needs at least one member side")
        if (
            not self.from_party.is_household
            and self.from_party.user_id == self.to_party.user_id
        ):
            raise ValueError("A member cannot settle with themselves")
        return self

    @property
    def from_user_id(self) -> Optional[str]:
        return self.from_party.user_id

    @property
    def to_user_id(self) -> Optional[str]:
        return self.to_party.user_id

    @property
    def is_household_wide(self) -> bool:
        return self.from_party.is_household or self.to_party.is_household


class SettlementInput(BaseModel):
    """
    Raw settlement request.

    from_user_id / to_user_id of None mean "the household" on that side.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    household_id: str = Field(..., min_length=1)
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    amount: Optional[Union[Decimal, int, float, str]] = None
    settled_on: Optional[Union[date, str]] = None
    note: Optional[str] = None

    @classmethod
    def from_direction(
        cls,
        household_id: str,
        direction: SettlementDirection,
        partner: Union[MemberParty, HouseholdParty],
        acting_user_id: str,
        amount: Union[Decimal, int, float, str, None],
        settled_on: Union[date, str, None],
        note: Optional[str] = None,
    ) -> 'SettlementInput':
        """
        Build a request from the "you pay / you receive" form.

        Paying puts the acting member on the from side; receiving puts
        them on the to side. The partner fills the other side.
        """
        direction = SettlementDirection(direction)
        if direction == SettlementDirection.PAY:
            from_user_id, to_user_id = acting_user_id, partner.user_id
        else:
            from_user_id, to_user_id = partner.user_id, acting_user_id

        return cls(
            household_id=household_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            settled_on=settled_on,
            note=note,
        )
