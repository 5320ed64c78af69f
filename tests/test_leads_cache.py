"""Leads payload cache: TTL expiry, hit path and invalidation on writes."""

from datetime import datetime

import pytest

from clinic_api.core.cache import RedisPayloadCache, TTLCache, build_payload_cache
from clinic_api.core.config import settings
from clinic_api.db.models import Lead
from clinic_api.services import lead_service


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_expires_entries():
    clock = FakeClock()
    cache: TTLCache[str] = TTLCache(default_ttl=60, clock=clock)
    cache.set("k", "v")

    clock.now += 59
    assert cache.get("k") == "v"
    clock.now += 2
    assert cache.get("k") is None


def test_get_or_fetch_only_fetches_on_miss():
    cache: TTLCache[str] = TTLCache(default_ttl=60, clock=FakeClock())
    calls = []

    def fetch():
        calls.append(1)
        return "payload"

    assert cache.get_or_fetch("k", fetch) == "payload"
    assert cache.get_or_fetch("k", fetch) == "payload"
    assert len(calls) == 1


@pytest.fixture
def counted_fetch(monkeypatch):
    calls = []
    original = lead_service.fetch_leads

    def counting(db, scope):
        calls.append(scope.clinic_id)
        return original(db, scope)

    monkeypatch.setattr(lead_service, "fetch_leads", counting)
    return calls


@pytest.mark.asyncio
async def test_second_read_is_served_from_cache(client, db, clinic_a, counted_fetch):
    db.add(Lead(clinic_id=clinic_a.clinic.id, name="Lead 1", appointment_date=datetime.now()))
    db.commit()

    first = await client.get("/api/leads", headers=clinic_a.staff_headers)
    second = await client.get("/api/leads", headers=clinic_a.staff_headers)

    assert first.status_code == second.status_code == 200
    assert first.content == second.content
    assert [row["name"] for row in first.json()] == ["Lead 1"]
    assert counted_fetch == [clinic_a.clinic.id]


@pytest.mark.asyncio
async def test_cache_is_keyed_by_clinic(client, db, clinic_a, clinic_b, counted_fetch):
    db.add(Lead(clinic_id=clinic_b.clinic.id, name="Lead B"))
    db.commit()

    res_a = await client.get("/api/leads", headers=clinic_a.staff_headers)
    res_b = await client.get("/api/leads", headers=clinic_b.staff_headers)

    assert res_a.json() == []
    assert [row["name"] for row in res_b.json()] == ["Lead B"]
    assert counted_fetch == [clinic_a.clinic.id, clinic_b.clinic.id]


@pytest.mark.asyncio
async def test_lead_write_invalidates_cache(client, db, clinic_a, counted_fetch):
    lead = Lead(clinic_id=clinic_a.clinic.id, name="Lead 1", appointment_date=datetime.now())
    db.add(lead)
    db.commit()

    await client.get("/api/leads", headers=clinic_a.staff_headers)
    res = await client.delete(f"/api/calendar/appointments/lead-{lead.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 204

    after = await client.get("/api/leads", headers=clinic_a.staff_headers)
    assert after.json() == []
    assert len(counted_fetch) == 2


class FakeRedis:
    """Dict-backed stand-in for the SETEX/GET/DEL/SCAN subset the cache uses."""

    def __init__(self):
        self.values: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}

    def setex(self, key, seconds, value):
        self.values[key] = value.encode("utf-8")
        self.ttls[key] = seconds

    def get(self, key):
        return self.values.get(key)

    def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)
            self.ttls.pop(key, None)

    def scan_iter(self, match):
        prefix = match.rstrip("*")
        return iter([key for key in self.values if key.startswith(prefix)])


@pytest.fixture
def redis_leads_cache(monkeypatch):
    fake = FakeRedis()
    store = RedisPayloadCache(fake, "leads", settings.LEADS_CACHE_TTL_SECONDS)
    monkeypatch.setattr(lead_service, "_leads_cache", store)
    return fake


def test_tests_run_on_in_memory_cache():
    assert isinstance(build_payload_cache("leads", 60), TTLCache)


def test_redis_cache_stores_with_setex_ttl():
    fake = FakeRedis()
    cache = RedisPayloadCache(fake, "leads", 300)

    cache.set("7", "[]")
    assert fake.ttls == {"leads:7": 300}
    assert cache.get("7") == "[]"
    assert cache.get("8") is None

    cache.set("8", "[1]", ttl=5)
    cache.clear()
    assert fake.values == {}


@pytest.mark.asyncio
async def test_redis_backed_reads_and_invalidation(client, db, clinic_a, counted_fetch, redis_leads_cache):
    lead = Lead(clinic_id=clinic_a.clinic.id, name="Lead 1", appointment_date=datetime.now())
    db.add(lead)
    db.commit()
    key = f"leads:{clinic_a.clinic.id}"

    first = await client.get("/api/leads", headers=clinic_a.staff_headers)
    second = await client.get("/api/leads", headers=clinic_a.staff_headers)
    assert first.content == second.content
    assert counted_fetch == [clinic_a.clinic.id]
    assert redis_leads_cache.ttls[key] == settings.LEADS_CACHE_TTL_SECONDS

    redis_leads_cache.setex("leads:all", 300, "[]")
    res = await client.delete(f"/api/calendar/appointments/lead-{lead.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 204
    assert key not in redis_leads_cache.values
    assert "leads:all" not in redis_leads_cache.values
