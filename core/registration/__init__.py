"""Registration codes and worker data validation"""

from .codes import (
    RegistrationCode,
    RegistrationCodeRepository,
    InMemoryRegistrationCodeRepository,
    CodeValidation,
    CodeErrorType,
)
from .validation import (
    NameValidation,
    PhoneValidation,
    validate_worker_name,
    validate_phone_number,
    normalize_phone_number,
)

__all__ = [
    'RegistrationCode',
    'RegistrationCodeRepository',
    'InMemoryRegistrationCodeRepository',
    'CodeValidation',
    'CodeErrorType',
    'NameValidation',
    'PhoneValidation',
    'validate_worker_name',
    'validate_phone_number',
    'normalize_phone_number',
]
