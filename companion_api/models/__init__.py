from .user import User
from .referral import ReferralEdge
from .payment import Payment
from .bonus import BonusWallet, CommissionTransaction
from .withdrawal import UsdtWithdrawal
from .setting import AdminSetting
from .token_wallet import TokenWallet, TokenTransaction
from .subscription import Subscription
