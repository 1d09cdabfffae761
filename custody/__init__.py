from .errors import (
    CustodyError, AuthorizationError, ValidationError, StateError, AlreadyExistsError,
    InsufficientFundsError, NoFundsError, ArithmeticOverflowError, NotFundedError,
)
from .limits import LIMITS, Role
from .auth import AuthProof, Signer
from .host import Host, InvocationContext, AuditRecord
from .token import LedgerToken
from .vault import Vault
from .user_wallet import UserWallet
from .wallet_factory import WalletFactory, compute_wallet_address, hash_user_id
from .config import CustodySettings, load_settings
from .deployment import CustodySystem, deploy_system
