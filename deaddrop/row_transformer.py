#!/usr/bin/env python3
"""
Row Transformer - default injection and field censoring

Two passes run on every exported row, always in this order:

1. Defaults: fill columns missing from the fetched row. Password-like
   columns get a bcrypt hash of the default, never the plaintext.
2. Censor: replace sensitive columns present in the row with synthetic
   values from Faker.

Generators are looked up in a fixed table keyed by ``FakeDataKind``.
Unknown method names fall back to ``word``.
"""

import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import bcrypt
from faker import Faker

from deaddrop.errors import GeneratorError
from deaddrop.table_config import TableConfig

logger = logging.getLogger(__name__)

PLACEHOLDER = '[FAKE_DATA]'

PASSWORD_FIELDS = frozenset({'password', 'password_hash', 'passwd', 'user_password'})


class FakeDataKind(Enum):
    """Supported synthetic data generators"""
    SAFE_EMAIL = "safe_email"
    EMAIL = "email"
    NAME = "name"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    USER_NAME = "user_name"
    PHONE_NUMBER = "phone_number"
    ADDRESS = "address"
    STREET_ADDRESS = "street_address"
    CITY = "city"
    STATE = "state"
    POSTCODE = "postcode"
    COUNTRY = "country"
    COMPANY = "company"
    JOB = "job"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    URL = "url"
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    MAC_ADDRESS = "mac_address"
    UUID = "uuid4"
    SSN = "ssn"
    CREDIT_CARD_NUMBER = "credit_card_number"
    IBAN = "iban"
    WORD = "word"


GENERATORS: Dict[FakeDataKind, Callable[[Faker], Any]] = {
    FakeDataKind.SAFE_EMAIL: lambda f: f.safe_email(),
    FakeDataKind.EMAIL: lambda f: f.email(),
    FakeDataKind.NAME: lambda f: f.name(),
    FakeDataKind.FIRST_NAME: lambda f: f.first_name(),
    FakeDataKind.LAST_NAME: lambda f: f.last_name(),
    FakeDataKind.USER_NAME: lambda f: f.user_name(),
    FakeDataKind.PHONE_NUMBER: lambda f: f.phone_number(),
    FakeDataKind.ADDRESS: lambda f: f.address(),
    FakeDataKind.STREET_ADDRESS: lambda f: f.street_address(),
    FakeDataKind.CITY: lambda f: f.city(),
    FakeDataKind.STATE: lambda f: f.state(),
    FakeDataKind.POSTCODE: lambda f: f.postcode(),
    FakeDataKind.COUNTRY: lambda f: f.country(),
    FakeDataKind.COMPANY: lambda f: f.company(),
    FakeDataKind.JOB: lambda f: f.job(),
    FakeDataKind.SENTENCE: lambda f: f.sentence(),
    FakeDataKind.PARAGRAPH: lambda f: f.paragraph(),
    FakeDataKind.URL: lambda f: f.url(),
    FakeDataKind.IPV4: lambda f: f.ipv4(),
    FakeDataKind.IPV6: lambda f: f.ipv6(),
    FakeDataKind.MAC_ADDRESS: lambda f: f.mac_address(),
    FakeDataKind.UUID: lambda f: f.uuid4(),
    FakeDataKind.SSN: lambda f: f.ssn(),
    FakeDataKind.CREDIT_CARD_NUMBER: lambda f: f.credit_card_number(),
    FakeDataKind.IBAN: lambda f: f.iban(),
    FakeDataKind.WORD: lambda f: f.word(),
}

# Column name -> generator, used when censor entries are bare names
COLUMN_KINDS: Dict[str, FakeDataKind] = {
    # Email patterns
    "email": FakeDataKind.SAFE_EMAIL,
    "email_address": FakeDataKind.SAFE_EMAIL,
    # Name patterns
    "name": FakeDataKind.NAME,
    "first_name": FakeDataKind.FIRST_NAME,
    "last_name": FakeDataKind.LAST_NAME,
    "username": FakeDataKind.USER_NAME,
    # Contact patterns
    "phone": FakeDataKind.PHONE_NUMBER,
    "phone_number": FakeDataKind.PHONE_NUMBER,
    "mobile": FakeDataKind.PHONE_NUMBER,
    "address": FakeDataKind.ADDRESS,
    "street": FakeDataKind.STREET_ADDRESS,
    "street_address": FakeDataKind.STREET_ADDRESS,
    "city": FakeDataKind.CITY,
    "state": FakeDataKind.STATE,
    "zip": FakeDataKind.POSTCODE,
    "zipcode": FakeDataKind.POSTCODE,
    "postal_code": FakeDataKind.POSTCODE,
    "country": FakeDataKind.COUNTRY,
    # Work patterns
    "company": FakeDataKind.COMPANY,
    "job_title": FakeDataKind.JOB,
    # Text patterns
    "description": FakeDataKind.SENTENCE,
    "bio": FakeDataKind.PARAGRAPH,
    "website": FakeDataKind.URL,
    "url": FakeDataKind.URL,
    # Network patterns
    "ip": FakeDataKind.IPV4,
    "ip_address": FakeDataKind.IPV4,
    "ipv4": FakeDataKind.IPV4,
    "ipv6": FakeDataKind.IPV6,
    "mac_address": FakeDataKind.MAC_ADDRESS,
    # Identifier patterns
    "uuid": FakeDataKind.UUID,
    "ssn": FakeDataKind.SSN,
    "credit_card": FakeDataKind.CREDIT_CARD_NUMBER,
    "iban": FakeDataKind.IBAN,
}

# Faker method spellings used by other tooling (camelCase, old names)
METHOD_ALIASES: Dict[str, FakeDataKind] = {
    "job_title": FakeDataKind.JOB,
    "username": FakeDataKind.USER_NAME,
    "uuid": FakeDataKind.UUID,
    "credit_card": FakeDataKind.CREDIT_CARD_NUMBER,
    "zipcode": FakeDataKind.POSTCODE,
}

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


def is_password_field(name: str) -> bool:
    return name.lower() in PASSWORD_FIELDS


def kind_for_column(column: str) -> FakeDataKind:
    """Pick a generator from a column name"""
    return COLUMN_KINDS.get(column.lower(), FakeDataKind.WORD)


def kind_for_method(method: str) -> FakeDataKind:
    """Pick a generator from a method name such as ``safeEmail`` or ``safe_email``"""
    normalized = _CAMEL_BOUNDARY.sub('_', method.strip()).lower()
    try:
        return FakeDataKind(normalized)
    except ValueError:
        pass
    if normalized in METHOD_ALIASES:
        return METHOD_ALIASES[normalized]
    logger.warning(f"Unknown censor method '{method}', using '{FakeDataKind.WORD.value}'")
    return FakeDataKind.WORD


class RowTransformer:
    """Applies defaults and censoring to exported rows"""

    def __init__(self, locale: str = 'en_US', seed: Optional[int] = None,
                 password_rounds: int = 10, faker: Optional[Faker] = None):
        self.locale = locale
        self.seed = seed
        self.password_rounds = password_rounds
        self._faker = faker
        self._password_hashes: Dict[str, str] = {}

    @property
    def faker(self) -> Faker:
        if self._faker is None:
            self._faker = Faker(self.locale)
            if self.seed is not None:
                self._faker.seed_instance(self.seed)
        return self._faker

    def transform(self, row: Mapping[str, Any], config: TableConfig) -> Dict[str, Any]:
        """Return a new row with defaults filled in and censored fields replaced"""
        result = dict(row)
        self._apply_defaults(result, config.defaults)
        self._censor_fields(result, config.censor)
        return result

    def _apply_defaults(self, row: Dict[str, Any], defaults: Mapping[str, Any]):
        for field_name, value in defaults.items():
            if field_name in row:
                continue
            row[field_name] = self.hash_password(value) if is_password_field(field_name) else value

    def _censor_fields(self, row: Dict[str, Any], censor: Mapping[str, Optional[str]]):
        for field_name, method in censor.items():
            if field_name not in row:
                continue
            kind = kind_for_method(method) if method else kind_for_column(field_name)
            row[field_name] = self.fake_value(kind)

    def hash_password(self, value: Any) -> str:
        """bcrypt hash of a default password; one hash per literal per transformer"""
        plaintext = '' if value is None else str(value)
        if plaintext not in self._password_hashes:
            hashed = bcrypt.hashpw(plaintext.encode('utf-8'), bcrypt.gensalt(rounds=self.password_rounds))
            self._password_hashes[plaintext] = hashed.decode('utf-8')
        return self._password_hashes[plaintext]

    def generate(self, kind: FakeDataKind) -> Any:
        """Run one generator, raising GeneratorError on failure"""
        try:
            return GENERATORS[kind](self.faker)
        except Exception as e:
            raise GeneratorError(f"Generator '{kind.value}' failed: {e}", kind.value) from e

    def fake_value(self, kind: FakeDataKind) -> Any:
        try:
            return self.generate(kind)
        except GeneratorError as e:
            logger.debug(f"{e.message}; using placeholder")
            return PLACEHOLDER
