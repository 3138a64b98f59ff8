# Import all models so that Base.metadata knows every table before create_all()
from companion_api.db.base_class import Base  # noqa: F401
from companion_api.models.user import User  # noqa: F401
from companion_api.models.referral import ReferralEdge  # noqa: F401
from companion_api.models.payment import Payment  # noqa: F401
from companion_api.models.bonus import BonusWallet, CommissionTransaction  # noqa: F401
from companion_api.models.withdrawal import UsdtWithdrawal  # noqa: F401
from companion_api.models.setting import AdminSetting  # noqa: F401
from companion_api.models.token_wallet import TokenWallet, TokenTransaction  # noqa: F401
from companion_api.models.subscription import Subscription  # noqa: F401
