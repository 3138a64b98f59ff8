from .token import Token, TokenData
from .user import UserBase, UserCreate, UserUpdate, User
from .referral import (
    ReferralLinkRequest,
    ReferralLinkResponse,
    Downline,
    DownlineStats,
    DownlinesResponse,
    ReferralSummary,
)
from .payment import (
    CheckoutSessionCreateRequest,
    CheckoutSessionCreateResponse,
    PaymentCreateInternal,
    Payment,
    WebhookAck,
)
from .commission import (
    CommissionTransaction,
    CommissionTransactionPage,
    CommissionOutcome,
    ReconciliationStats,
)
from .bonus import BonusWallet, UsdtAddressUpdate
from .withdrawal import WithdrawalCreate, WithdrawalStatusUpdate, Withdrawal
from .setting import TypedSettings, SettingsRead, SettingsUpdate, MonetizationStatus
from .token_wallet import TokenBalance, TokenDeductRequest, TokenRefundRequest, TokenTransaction
from .subscription import SubscriptionCheckoutRequest, SubscriptionStatus, SubscriptionGrantStats
