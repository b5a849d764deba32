from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import CardType, NotificationType, TransactionStatus, TransactionType


class TransactionIn(BaseModel):
    type: TransactionType
    amount: float = Field(..., ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: str = Field(default="", max_length=500)
    date: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.completed
    payment_method: Optional[str] = Field(default=None, max_length=40)
    reference: Optional[str] = Field(default=None, max_length=64)
    card_id: Optional[int] = None


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    status: Optional[TransactionStatus] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: float
    category: Optional[str]
    description: str
    date: Optional[datetime]
    status: TransactionStatus
    reference: Optional[str]
    payment_method: Optional[str]
    created_at: datetime
    recipient_account: Optional[str] = None
    recipient_bank: Optional[str] = None
    card_id: Optional[int] = None


class CardIn(BaseModel):
    type: CardType = CardType.debit
    last4: str = Field(..., pattern=r"^\d{4}$")
    expiry_date: str = Field(..., pattern=r"^(0[1-9]|1[0-2])/\d{2}$")
    bank_name: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, max_length=20)


class CardControlsIn(BaseModel):
    online_enabled: Optional[bool] = None
    international_enabled: Optional[bool] = None
    contactless_enabled: Optional[bool] = None
    atm_withdrawals_enabled: Optional[bool] = None


class CardLimitsIn(BaseModel):
    atm_limit: Optional[float] = Field(default=None, ge=0)
    online_limit: Optional[float] = Field(default=None, ge=0)
    pos_limit: Optional[float] = Field(default=None, ge=0)
    daily_limit: Optional[float] = Field(default=None, ge=0)


class CardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: CardType
    last4: str
    bank_name: str
    expiry_date: str
    balance: float
    color: str
    is_active: bool
    is_blocked: bool
    online_enabled: bool
    international_enabled: bool
    contactless_enabled: bool
    atm_withdrawals_enabled: bool
    atm_limit: Optional[float]
    online_limit: Optional[float]
    pos_limit: Optional[float]
    daily_limit: Optional[float]
    pin_set: bool


class PinIn(BaseModel):
    pin: str = Field(..., pattern=r"^\d{4}$")


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: NotificationType
    is_read: bool
    link: Optional[str]
    transaction_id: Optional[int]
    created_at: datetime


class SessionIn(BaseModel):
    session_token: str = Field(..., min_length=8, max_length=200)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = Field(default=None, max_length=45)


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    device_info: Optional[str]
    browser: Optional[str]
    os: Optional[str]
    ip_address: Optional[str]
    last_active: datetime
    created_at: datetime
    expires_at: datetime
    is_current: bool


class _QuickAction(BaseModel):
    amount: float = Field(..., gt=0)
    pin: str = Field(..., pattern=r"^\d{4}$")
    card_id: Optional[int] = None


class SendMoneyIn(_QuickAction):
    account_number: str = Field(..., pattern=r"^\d{10}$")
    bank_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    payment_method: str = Field(default="wallet", max_length=40)


class PayBillIn(_QuickAction):
    bill_type: Literal[
        "airtime", "data", "electricity", "cable", "internet", "betting"
    ]
    provider: str = Field(..., min_length=1, max_length=60)
    account_identifier: str = Field(..., min_length=1, max_length=40)


class TopUpIn(_QuickAction):
    method: Literal["card", "bank", "cash"] = "card"


class InvestIn(_QuickAction):
    plan: Literal["fixed", "target"]
    duration_days: int = 90
    goal_name: Optional[str] = Field(default=None, max_length=100)
    target_amount: Optional[float] = Field(default=None, gt=0)


class ExchangeIn(_QuickAction):
    from_currency: Literal["NGN", "USD"] = "NGN"
    to_currency: Literal["NGN", "USD"] = "USD"


class MonthlyData(BaseModel):
    month: str
    income: float
    expenses: float


class CategorySpending(BaseModel):
    category: str
    amount: float
    percentage: float
    color: str
    hex: str
    trend: str


class AnalyticsData(BaseModel):
    # None means "not enough data", distinct from 0 (no growth).
    monthly_growth: Optional[float]
    avg_monthly_income: float
    avg_monthly_expenses: float
    savings_rate: float
    top_spending_category: str
    top_spending_amount: float
    transaction_count: int
    cards_used: int
    income_growth: float
    savings_growth: float
    health_score: int
    health_grade: str

    @classmethod
    def empty(cls, cards_used: int = 0) -> "AnalyticsData":
        return cls(
            monthly_growth=None,
            avg_monthly_income=0,
            avg_monthly_expenses=0,
            savings_rate=0,
            top_spending_category="N/A",
            top_spending_amount=0,
            transaction_count=0,
            cards_used=cards_used,
            income_growth=0,
            savings_growth=0,
            health_score=0,
            health_grade="F",
        )


class DashboardStats(BaseModel):
    total_balance: float
    total_income: float
    total_expenses: float
    monthly_growth: Optional[float]
    transaction_count: int
    active_cards: int
    ledger_balance: Optional[float]
    balance_reconciled: bool

    @classmethod
    def empty(cls, active_cards: int = 0) -> "DashboardStats":
        return cls(
            total_balance=0,
            total_income=0,
            total_expenses=0,
            monthly_growth=None,
            transaction_count=0,
            active_cards=active_cards,
            ledger_balance=None,
            balance_reconciled=False,
        )


class PaymentMethodUsage(BaseModel):
    method: str
    count: int
    percentage: float


class TransactionStats(BaseModel):
    total_balance: float
    total_income: float
    total_expenses: float
    balance_change: float
    income_change: float
    expense_change: float
    savings_rate: float
    transaction_count: int


class ProfileIn(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    transaction_pin_set: bool


class TransactionPinIn(BaseModel):
    pin: str = Field(..., pattern=r"^\d{4}$")
    current_pin: Optional[str] = Field(default=None, pattern=r"^\d{4}$")


class QuickActionOut(BaseModel):
    transaction: TransactionOut
    notification_id: int
    card_balance: Optional[float] = None
    details: dict[str, object] = Field(default_factory=dict)
