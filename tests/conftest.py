from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from restaurant_verification.core.config import Settings
from restaurant_verification.core.errors import ListingOracleUnavailable, UpstreamTimeout
from restaurant_verification.db.models import Restaurant, VerificationCode  # noqa: F401
from restaurant_verification.services.trust.listing_service import ListingRecord
from restaurant_verification.services.trust.trust_service import TrustService
from restaurant_verification.services.verification import challenge_service as challenge_module
from restaurant_verification.services.verification.challenge_service import ChallengeService
from restaurant_verification.services.verification.telephony_service import TelephonyError

FIXED_CODE = "482915"
PHONE = "+14155550123"


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 3, 2, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTelephony:
    def __init__(self, configured: bool = True):
        self.configured = configured
        self.calls: List[Tuple[str, str]] = []
        self.messages: List[Tuple[str, str]] = []
        self.fail: Optional[str] = None  # "error" or "timeout"

    @property
    def is_configured(self) -> bool:
        return self.configured

    def _maybe_fail(self):
        if self.fail == "timeout":
            raise UpstreamTimeout("telephony")
        if self.fail == "error":
            raise TelephonyError("Twilio error 21215")

    def place_voice_call(self, to: str, twiml: str) -> str:
        self._maybe_fail()
        self.calls.append((to, twiml))
        return f"CA{len(self.calls):04d}"

    def send_sms(self, to: str, body: str) -> str:
        self._maybe_fail()
        self.messages.append((to, body))
        return f"SM{len(self.messages):04d}"


class FakeCaptcha:
    def __init__(self, configured: bool = False, verdict: bool = True):
        self.configured = configured
        self.verdict = verdict
        self.tokens: List[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        self.tokens.append(token)
        return self.verdict


class FakeListing:
    def __init__(self, record: Optional[ListingRecord] = None):
        self.record = record
        self.lookups: List[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    def lookup(self, place_id: str) -> ListingRecord:
        self.lookups.append(place_id)
        if self.record is None:
            raise ListingOracleUnavailable()
        return self.record


def make_listing(status="OPERATIONAL", rating=4.5, reviews=120, place_id="ChIJ-place-1") -> ListingRecord:
    return ListingRecord(
        place_id=place_id,
        name="Golden Wok",
        address="1 Market St, San Francisco",
        rating=rating,
        review_count=reviews,
        operational_status=status,
        listed_phone=PHONE,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        hide_parameters=True,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def telephony():
    return FakeTelephony()


@pytest.fixture
def captcha():
    return FakeCaptcha()


@pytest.fixture
def listing():
    return FakeListing(make_listing())


@pytest.fixture
def prod_settings():
    return Settings(_env_file=None, ENVIRONMENT="production")


@pytest.fixture
def dev_settings():
    return Settings(_env_file=None, ENVIRONMENT="development", DEV_ECHO_MODE=True)


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr(challenge_module, "generate_code", lambda: FIXED_CODE)
    return FIXED_CODE


@pytest.fixture
def make_service(session, clock, telephony, captcha, prod_settings):
    def _make(settings=None, telephony=telephony, captcha=captcha) -> ChallengeService:
        return ChallengeService(
            session,
            telephony=telephony,
            captcha=captcha,
            settings=settings or prod_settings,
            clock=clock,
        )
    return _make


@pytest.fixture
def trust_service(session, listing, clock):
    return TrustService(session, listing=listing, clock=clock)


@pytest.fixture
def restaurant(session, clock):
    row = Restaurant(wallet_address="0xabc", name="Golden Wok", created_at=clock(), updated_at=clock())
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


@pytest.fixture
def listing_factory():
    return make_listing


@pytest.fixture
def fake_listing():
    return FakeListing
