"""
Shared fixtures: in-memory SQLite store, in-process cache with a
controllable clock, a swappable catalog and a recording event listener.
"""

import copy

import pytest

from notification_preferences.cache import PreferenceCache
from notification_preferences.db import Base, create_db_engine, create_session_factory
from notification_preferences.events import PreferenceEventDispatcher
from notification_preferences.loader import StaticCatalogProvider
from notification_preferences.service import NotificationPreferenceService
from notification_preferences.store import PreferenceStore

INVOICE_PAID = "app.notifications.InvoicePaid"
INVOICE_OVERDUE = "app.notifications.InvoiceOverdue"
NEWSLETTER = "app.notifications.Newsletter"
PRODUCT_LAUNCH = "app.notifications.ProductLaunch"
PROMO = "app.notifications.Promo"
SYSTEM_NOTICE = "app.notifications.SystemNotice"

CATALOG = {
    "channels": {
        "mail": {"label": "Email"},
        "database": {"label": "In-app"},
        "sms": {"label": "SMS", "enabled": False},
    },
    "groups": {
        "marketing": {
            "label": "Marketing",
            "description": "News and offers",
            "order": 2,
            "default_preference": "opt_out",
        },
        "billing": {"label": "Billing", "order": 1},
    },
    "notifications": {
        INVOICE_PAID: {
            "label": "Invoice paid",
            "description": "Sent when an invoice is paid",
            "group": "billing",
            "order": 1,
            "force_channels": ["mail"],
        },
        INVOICE_OVERDUE: {
            "group": "billing",
            "order": 0,
            "default_channels": ["database"],
        },
        NEWSLETTER: {"group": "marketing", "order": 2},
        PRODUCT_LAUNCH: {"group": "marketing", "order": 1, "default_preference": "opt_in"},
        PROMO: {"group": "marketing", "force_channels": ["mail"]},
        SYSTEM_NOTICE: {},
    },
    "default_preference": "opt_in",
}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def catalog_data():
    return copy.deepcopy(CATALOG)


@pytest.fixture
def catalog_provider(catalog_data):
    return StaticCatalogProvider(catalog_data)


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so separate threads get separate connections."""
    eng = create_db_engine(f"sqlite:///{tmp_path / 'preferences.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return PreferenceStore(create_session_factory(engine))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return PreferenceCache(redis_url="", clock=clock)


@pytest.fixture
def received_events():
    return []


@pytest.fixture
def events(received_events):
    dispatcher = PreferenceEventDispatcher()
    dispatcher.subscribe(received_events.append)
    return dispatcher


@pytest.fixture
def service(catalog_provider, store, cache, events):
    return NotificationPreferenceService(
        catalog=catalog_provider,
        store=store,
        cache=cache,
        events=events,
    )
