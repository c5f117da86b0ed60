"""Pytest fixtures for testing"""

import os

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

import pytest
from datetime import date
from typing import Dict, Generator, List, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from finledger.api.dependencies import get_clock, get_pricing_client
from finledger.api.main import create_app
from finledger.config import settings
from finledger.domain.exceptions import PricingError
from finledger.domain.models import Bucket
from finledger.infrastructure.database.models import Base
from finledger.infrastructure.database.session import get_db


engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date(2025, 3, 15)


class FakePricingClient:
    """In-memory stand-in for PricingClient"""

    def __init__(self, prices: Dict[str, float] | None = None, fx_rates: Dict[Tuple[str, str], float] | None = None):
        self.prices = prices or {}
        self.fx_rates = fx_rates or {}
        self.price_calls: List[Tuple[str, Bucket, str]] = []

    async def get_price(self, symbol: str, bucket: Bucket, currency: str) -> float:
        self.price_calls.append((symbol, bucket, currency))
        if symbol not in self.prices:
            raise PricingError(f"No price available for {symbol}")
        return self.prices[symbol]

    async def get_fx_rate(self, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            return 1.0
        if (from_currency, to_currency) not in self.fx_rates:
            raise PricingError(f"FX provider returned no rates for {from_currency}")
        return self.fx_rates[(from_currency, to_currency)]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    """Business date pinned to TODAY"""
    return lambda: TODAY


@pytest.fixture
def pricing() -> FakePricingClient:
    return FakePricingClient(
        prices={"120503": 50.0, "AAPL": 200.0, "BITCOIN": 5_000_000.0},
        fx_rates={("USD", "INR"): 80.0, ("INR", "USD"): 0.0125},
    )


@pytest.fixture
def client(db: Session, pricing: FakePricingClient, clock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pricing_client] = lambda: pricing
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {settings.cron_secret}"}
