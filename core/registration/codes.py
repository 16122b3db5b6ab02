"""
Registration code repository.

Codes gate worker self-registration over SMS. Each code can be deactivated,
limited to a number of uses and given an expiry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class CodeErrorType(str, Enum):
    INVALID_CODE = "INVALID_CODE"
    EXPIRED_CODE = "EXPIRED_CODE"
    MAX_USES_EXCEEDED = "MAX_USES_EXCEEDED"


@dataclass
class RegistrationCode:
    code: str
    is_active: bool = True
    max_uses: Optional[int] = None
    current_uses: int = 0
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or datetime.utcnow()) > self.expires_at


@dataclass
class CodeValidation:
    is_valid: bool
    code: Optional[RegistrationCode] = None
    error_type: Optional[CodeErrorType] = None
    error: Optional[str] = None


class RegistrationCodeRepository(ABC):
    """Storage for registration codes"""

    @abstractmethod
    def add_code(self, code: str, description: Optional[str] = None,
                 max_uses: Optional[int] = None,
                 expires_at: Optional[datetime] = None) -> RegistrationCode:
        pass

    @abstractmethod
    def get_code(self, code: str) -> Optional[RegistrationCode]:
        pass

    @abstractmethod
    def deactivate_code(self, code: str) -> bool:
        pass

    @abstractmethod
    def record_use(self, code: str) -> Optional[RegistrationCode]:
        pass

    @abstractmethod
    def all_codes(self) -> List[RegistrationCode]:
        pass

    def known_codes(self) -> List[str]:
        """Every code the classifier should recognize, including unusable ones"""
        return [c.code for c in self.all_codes()]

    def active_codes(self, now: Optional[datetime] = None) -> List[RegistrationCode]:
        return [c for c in self.all_codes() if self.validate_code(c.code, now).is_valid]

    def validate_code(self, code: str, now: Optional[datetime] = None) -> CodeValidation:
        """
        Check whether a code can be used right now.

        Args:
            code: Code as sent by the worker (case-insensitive)
            now: Reference time for expiry checks

        Returns:
            CodeValidation with a German error text when the code is unusable
        """
        record = self.get_code(code)
        if record is None:
            return CodeValidation(False, None, CodeErrorType.INVALID_CODE, "Ungültiger Registrierungscode")
        if not record.is_active:
            return CodeValidation(False, record, CodeErrorType.INVALID_CODE, "Registrierungscode ist deaktiviert")
        if record.is_expired(now):
            return CodeValidation(False, record, CodeErrorType.EXPIRED_CODE, "Registrierungscode ist abgelaufen")
        if record.max_uses is not None and record.current_uses >= record.max_uses:
            return CodeValidation(False, record, CodeErrorType.MAX_USES_EXCEEDED,
                                  "Registrierungscode hat maximale Nutzung erreicht")
        return CodeValidation(True, record)

    def stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        codes = self.all_codes()
        return {
            "total_codes": len(codes),
            "active_codes": len(self.active_codes(now)),
            "expired_codes": sum(1 for c in codes if c.is_expired(now)),
            "total_uses": sum(c.current_uses for c in codes),
        }


class InMemoryRegistrationCodeRepository(RegistrationCodeRepository):
    """Thread-safe in-process code table"""

    def __init__(self, codes: Optional[Iterable[str]] = None):
        self._codes: Dict[str, RegistrationCode] = {}
        self._lock = threading.Lock()
        for code in codes or []:
            self.add_code(code)

    @staticmethod
    def _key(code: str) -> str:
        return (code or "").strip().lower()

    def add_code(self, code, description=None, max_uses=None, expires_at=None):
        key = self._key(code)
        if not key:
            raise ValueError("Registration code must not be empty")
        record = RegistrationCode(
            code=key,
            max_uses=max_uses,
            expires_at=expires_at,
            description=description,
        )
        with self._lock:
            self._codes[key] = record
        logger.info(f"Registration code added: {key}")
        return record

    def get_code(self, code):
        with self._lock:
            return self._codes.get(self._key(code))

    def deactivate_code(self, code):
        with self._lock:
            record = self._codes.get(self._key(code))
            if record is None:
                return False
            record.is_active = False
        logger.info(f"Registration code deactivated: {self._key(code)}")
        return True

    def record_use(self, code):
        with self._lock:
            record = self._codes.get(self._key(code))
            if record is not None:
                record.current_uses += 1
            return record

    def all_codes(self):
        with self._lock:
            return list(self._codes.values())
