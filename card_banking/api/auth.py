"""
System wiring plus authentication and authorization dependencies
"""

from dataclasses import dataclass, field
import threading
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from ..cards import CardDirectory, CardManager
from ..config import CardBankingConfig, get_config
from ..encryption import CardNumberCipher, create_card_cipher
from ..ledger import TransferLedger
from ..logging_config import setup_logging
from ..storage import StorageInterface, create_storage
from ..transfers import TransferEngine


ADMIN_ROLE = "ADMIN"


class CardBankingSystem:
    """Card banking components wired over one storage backend"""

    def __init__(
        self,
        config: Optional[CardBankingConfig] = None,
        storage: Optional[StorageInterface] = None,
        cipher: Optional[CardNumberCipher] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)
        self.cipher = cipher or create_card_cipher(self.config)

        self.directory = CardDirectory(self.storage, self.cipher)
        self.card_manager = CardManager(self.directory, self.cipher)
        self.ledger = TransferLedger(self.storage)
        self.transfer_engine = TransferEngine(
            self.storage, self.directory, self.ledger, self.cipher,
            max_retries=self.config.transfer_max_retries
        )


# Global system instance, built on first use so that importing the API
# does not require an encryption key to be configured
_system: Optional[CardBankingSystem] = None
_system_lock = threading.Lock()


def get_card_banking_system() -> CardBankingSystem:
    global _system
    with _system_lock:
        if _system is None:
            cfg = get_config()
            setup_logging(cfg.log_level, cfg.log_format)
            _system = CardBankingSystem(cfg)
    return _system


security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller"""
    username: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def _parse_roles(value) -> FrozenSet[str]:
    if not value:
        return frozenset()
    if isinstance(value, str):
        value = value.split(",")
    return frozenset(str(role).strip().upper() for role in value if str(role).strip())


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_username: Optional[str] = Header(default=None),
    x_roles: Optional[str] = Header(default=None),
    system: CardBankingSystem = Depends(get_card_banking_system)
) -> Principal:
    """
    Resolve the caller from a bearer JWT (`sub` and `roles` claims).

    With auth disabled, the X-Username and X-Roles headers are trusted
    instead (development and tests only).
    """
    cfg = system.config
    if not cfg.auth_enabled:
        if not x_username:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return Principal(username=x_username, roles=_parse_roles(x_roles))

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, cfg.jwt_secret,
                             algorithms=[cfg.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(username=username, roles=_parse_roles(payload.get("roles")))


def get_current_username(principal: Principal = Depends(get_current_principal)) -> str:
    return principal.username


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Administrator role required")
    return principal
