"""Domain models for the TokenShare application."""

from __future__ import annotations

import enum
import uuid

from tortoise import fields, models


class UserRole(str, enum.Enum):
    """Enum for user roles."""

    ADMIN = "admin"
    USER = "user"


class BaseModel(models.Model):
    """Abstract base model with common fields."""

    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True


class User(BaseModel):
    """A household member who buys tokens and contributes towards them."""

    name = fields.CharField(max_length=255, unique=True)
    role = fields.CharEnumField(UserRole, default=UserRole.USER)
    is_active = fields.BooleanField(default=True)

    purchases: fields.ReverseRelation[TokenPurchase]
    contributions: fields.ReverseRelation[UserContribution]
    meter_readings: fields.ReverseRelation[MeterReading]

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __str__(self) -> str:
        return self.name


class TokenPurchase(BaseModel):
    """A bulk acquisition of electricity tokens with a meter snapshot."""

    purchase_date = fields.DateField()
    total_tokens = fields.DecimalField(max_digits=12, decimal_places=2)
    total_payment = fields.DecimalField(max_digits=12, decimal_places=2)
    meter_reading = fields.DecimalField(
        max_digits=12,
        decimal_places=2,
        description="Cumulative meter value (kWh) at the time of purchase",
    )
    is_emergency = fields.BooleanField(default=False)
    creator: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="purchases"
    )

    contribution: fields.BackwardOneToOneRelation[UserContribution]

    def __str__(self) -> str:
        kind = "emergency " if self.is_emergency else ""
        return (
            f"{kind}purchase on {self.purchase_date}: "
            f"{self.total_tokens} kWh for {self.total_payment}"
        )


class UserContribution(BaseModel):
    """A user's settlement of a single purchase."""

    purchase: fields.OneToOneRelation[TokenPurchase] = fields.OneToOneField(
        "models.TokenPurchase", related_name="contribution", on_delete=fields.CASCADE
    )
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="contributions"
    )
    meter_reading = fields.DecimalField(max_digits=12, decimal_places=2)
    tokens_consumed = fields.DecimalField(
        max_digits=12,
        decimal_places=2,
        description="Tokens (kWh) drawn since the previous purchase",
    )
    contribution_amount = fields.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self) -> str:
        return (
            f"Contribution to {self.purchase_id}: "
            f"{self.tokens_consumed} kWh, paid {self.contribution_amount}"
        )


class MeterReading(BaseModel):
    """An independent periodic meter reading."""

    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="meter_readings"
    )
    reading = fields.DecimalField(max_digits=12, decimal_places=2)
    reading_date = fields.DateField()
    notes = fields.CharField(max_length=500, null=True)

    class Meta:
        unique_together = ("user", "reading_date")

    def __str__(self) -> str:
        return f"Reading on {self.reading_date}: {self.reading}"
