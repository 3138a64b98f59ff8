from . import crud_user as user
from . import crud_referral as referral
from . import crud_payment as payment
from . import crud_bonus as bonus
from . import crud_withdrawal as withdrawal
from . import crud_setting as setting
from . import crud_token_wallet as token_wallet
