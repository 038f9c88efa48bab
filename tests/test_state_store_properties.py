"""
Property-based tests for the State Store module.

Uses Hypothesis for property-based testing of HMAC protection, state
round trips and the alert ledger's insert-if-absent rule.
"""

import asyncio
import json
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_watch.enums import AlertKind, CertStatus, Health, PlanId, RegistrationStatus
from expiry_watch.exceptions import (
    DuplicateDomainError,
    NotFoundError,
    PersistenceError,
    TamperingError,
)
from expiry_watch.models import (
    Account,
    AlertRecord,
    CertProbeResult,
    DomainProbe,
    NotificationPreference,
    RegistrationProbeResult,
)
from expiry_watch.state_store import StateStore


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


@st.composite
def domain_strategy(draw) -> str:
    """Generate valid domain names."""
    sld = draw(
        st.text(
            alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
            min_size=1,
            max_size=20,
        )
    )
    tld = draw(st.sampled_from(["fr", "com", "net", "org", "io"]))
    return f"{sld}.{tld}"


hmac_secret_strategy = st.text(
    alphabet=st.characters(min_codepoint=33, max_codepoint=126),
    min_size=8,
    max_size=64,
)


def make_probe(domain_name: str, cert_days: int = 10, registration_days: int = 200) -> DomainProbe:
    return DomainProbe(
        domain_name=domain_name,
        cert=CertProbeResult(
            health=Health.WARNING,
            expiry=NOW + timedelta(days=cert_days),
            days_remaining=cert_days,
            issuer="Test CA",
        ),
        registration=RegistrationProbeResult(
            health=Health.HEALTHY,
            expiry=NOW + timedelta(days=registration_days),
            days_remaining=registration_days,
            registrar="Test Registrar",
        ),
        checked_at=NOW,
    )


def make_alert(domain_id: str, threshold: int = 7, sent_date: date = TODAY, record_id: str = "a1") -> AlertRecord:
    return AlertRecord(
        id=record_id,
        domain_id=domain_id,
        account_id="acct-1",
        kind=AlertKind.SSL_EXPIRY,
        threshold_days=threshold,
        sent_date=sent_date,
        sent_at=NOW,
    )


class TestHMACProtectionProperty:
    """Saved state is signed and tampering is detected on load."""

    @given(secret=hmac_secret_strategy, domain=domain_strategy())
    @settings(max_examples=50)
    def test_saved_file_carries_valid_hmac(self, secret: str, domain: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = StateStore(path, secret, clock=lambda: NOW)
            run_async(store.add_domain("acct-1", domain))

            raw = json.loads(path.read_text(encoding="utf-8"))
            stored = raw.pop("hmac")
            assert store.validate_hmac(stored, store.compute_hmac(raw))

    @given(domain=domain_strategy())
    @settings(max_examples=50)
    def test_modified_content_is_rejected(self, domain: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = StateStore(path, "secret-key-123", clock=lambda: NOW)
            run_async(store.add_domain("acct-1", domain))

            raw = json.loads(path.read_text(encoding="utf-8"))
            raw["domains"][0]["account_id"] = "attacker"
            path.write_text(json.dumps(raw), encoding="utf-8")

            with pytest.raises(TamperingError) as exc_info:
                StateStore(path, "secret-key-123").load()
            assert exc_info.value.code == "hmac_mismatch"

    def test_wrong_secret_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            run_async(StateStore(path, "secret-one").add_domain("acct-1", "example.com"))
            with pytest.raises(TamperingError):
                run_async(StateStore(path, "secret-two").list_domains())

    def test_corrupt_json_is_persistence_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            path.write_text("{not json", encoding="utf-8")
            with pytest.raises(PersistenceError) as exc_info:
                StateStore(path, "secret").load()
            assert exc_info.value.code == "parse_error"

    def test_missing_file_is_empty_state(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "absent.json", "secret")
            assert store.load() is False
            assert run_async(store.list_domains()) == []


class TestStateRoundTripProperty:
    """Everything written is read back identically by a fresh store."""

    @given(
        domains=st.lists(domain_strategy(), min_size=1, max_size=5, unique=True),
        cert_days=st.integers(min_value=-10, max_value=400),
    )
    @settings(max_examples=30)
    def test_domains_and_history_round_trip(self, domains: list, cert_days: int) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = StateStore(path, "secret", clock=lambda: NOW)
            for name in domains:
                domain = run_async(store.add_domain("acct-1", name))
                run_async(store.apply_check(domain.id, make_probe(name, cert_days)))

            reloaded = StateStore(path, "secret")
            original = {d.id: d for d in run_async(store.list_domains())}
            loaded = {d.id: d for d in run_async(reloaded.list_domains())}
            assert loaded == original
            for domain_id in loaded:
                assert run_async(reloaded.get_history(domain_id)) == run_async(store.get_history(domain_id))

    def test_accounts_preferences_and_alerts_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = StateStore(path, "secret")
            store.upsert_account(Account(id="acct-1", email="owner@example.com", plan=PlanId.PRO))
            store.upsert_notification_preference(
                NotificationPreference("acct-1", "https://hooks.slack.com/services/x", True)
            )
            run_async(store.insert_alert_if_absent(make_alert("d1")))

            reloaded = StateStore(path, "secret")
            account = run_async(reloaded.get_account("acct-1"))
            assert account.plan is PlanId.PRO
            assert account.email == "owner@example.com"
            preference = run_async(reloaded.get_notification_preference("acct-1"))
            assert preference.webhook_target == "https://hooks.slack.com/services/x"
            assert run_async(reloaded.find_alert("d1", AlertKind.SSL_EXPIRY, 7, TODAY)) is not None


class TestDomainRecordsProperty:
    """Domain creation, checks and history."""

    def test_new_domain_has_unknown_statuses(self) -> None:
        store = StateStore(None, "secret", clock=lambda: NOW)
        domain = run_async(store.add_domain("acct-1", "example.com"))
        assert domain.cert_status is CertStatus.UNKNOWN
        assert domain.registration_status is RegistrationStatus.UNKNOWN
        assert domain.last_checked is None

    def test_duplicate_name_per_account_is_rejected(self) -> None:
        store = StateStore(None, "secret")
        run_async(store.add_domain("acct-1", "example.com"))
        with pytest.raises(DuplicateDomainError):
            run_async(store.add_domain("acct-1", "example.com"))
        # Another account may monitor the same name
        run_async(store.add_domain("acct-2", "example.com"))
        assert run_async(store.count_domains("acct-1")) == 1
        assert run_async(store.count_domains("acct-2")) == 1

    def test_apply_check_updates_domain_and_appends_history(self) -> None:
        store = StateStore(None, "secret")
        domain = run_async(store.add_domain("acct-1", "example.com"))
        updated, history = run_async(store.apply_check(domain.id, make_probe("example.com", 10)))
        assert updated.cert_status is CertStatus.EXPIRING_SOON
        assert updated.registration_status is RegistrationStatus.ACTIVE
        assert updated.cert_issuer == "Test CA"
        assert updated.last_checked == NOW
        assert history.domain_id == domain.id
        assert history.cert_expiry == updated.cert_expiry

    def test_apply_check_on_missing_domain(self) -> None:
        store = StateStore(None, "secret")
        with pytest.raises(NotFoundError):
            run_async(store.apply_check("missing", make_probe("example.com")))

    def test_history_is_newest_first_and_limited(self) -> None:
        store = StateStore(None, "secret")
        domain = run_async(store.add_domain("acct-1", "example.com"))
        for offset in range(5):
            probe = make_probe("example.com")
            probe.checked_at = NOW + timedelta(hours=offset)
            run_async(store.apply_check(domain.id, probe))
        history = run_async(store.get_history(domain.id, limit=3))
        assert [h.checked_at for h in history] == [NOW + timedelta(hours=h) for h in (4, 3, 2)]

    def test_delete_removes_domain_and_history(self) -> None:
        store = StateStore(None, "secret")
        domain = run_async(store.add_domain("acct-1", "example.com"))
        run_async(store.apply_check(domain.id, make_probe("example.com")))
        assert run_async(store.delete_domain(domain.id)) is True
        assert run_async(store.get_domain(domain.id)) is None
        assert run_async(store.get_history(domain.id)) == []
        assert run_async(store.delete_domain(domain.id)) is False

    def test_public_token_lookup(self) -> None:
        store = StateStore(None, "secret")
        domain = run_async(store.add_domain("acct-1", "example.com"))
        run_async(store.set_public_token(domain.id, "tok-123"))
        assert run_async(store.get_by_public_token("tok-123")).id == domain.id
        assert run_async(store.get_by_public_token("tok-999")) is None


class TestAlertLedgerUniquenessProperty:
    """At most one ledger row per (domain, kind, threshold, day)."""

    @given(
        threshold=st.sampled_from([1, 7, 14, 30]),
        attempts=st.integers(min_value=2, max_value=6),
    )
    @settings(max_examples=50)
    def test_repeated_insert_keeps_one_row(self, threshold: int, attempts: int) -> None:
        store = StateStore(None, "secret")
        results = [
            run_async(store.insert_alert_if_absent(make_alert("d1", threshold, record_id=f"a{i}")))
            for i in range(attempts)
        ]
        assert results == [False] + [True] * (attempts - 1)
        row = run_async(store.find_alert("d1", AlertKind.SSL_EXPIRY, threshold, TODAY))
        assert row.id == "a0"

    def test_next_day_is_a_new_key(self) -> None:
        store = StateStore(None, "secret")
        assert run_async(store.insert_alert_if_absent(make_alert("d1"))) is False
        tomorrow = TODAY + timedelta(days=1)
        assert run_async(store.insert_alert_if_absent(make_alert("d1", sent_date=tomorrow))) is False

    def test_concurrent_inserts_keep_one_row(self) -> None:
        store = StateStore(None, "secret")

        async def race() -> list:
            return await asyncio.gather(*(
                store.insert_alert_if_absent(make_alert("d1", record_id=f"a{i}"))
                for i in range(10)
            ))

        results = run_async(race())
        assert results.count(False) == 1
        assert results.count(True) == 9

    def test_concurrent_file_backed_inserts_keep_one_row(self, tmp_path) -> None:
        store = StateStore(tmp_path / "state.json", "secret")

        async def race() -> list:
            return await asyncio.gather(*(
                store.insert_alert_if_absent(make_alert("d1", record_id=f"a{i}"))
                for i in range(10)
            ))

        results = run_async(race())
        assert results.count(False) == 1
        reloaded = StateStore(tmp_path / "state.json", "secret")
        assert run_async(reloaded.find_alert("d1", AlertKind.SSL_EXPIRY, 7, TODAY)) is not None


class FailingSaveStore(StateStore):
    """Memory store whose writes can be switched to fail."""

    def __init__(self, **kwargs) -> None:
        super().__init__(None, "secret", clock=lambda: NOW, **kwargs)
        self.fail_saves = False

    def save(self) -> None:
        if self.fail_saves:
            raise PersistenceError(code="io_error", message="disk full")
        super().save()


class TestFailedWriteRollbackProperty:
    """A mutation whose save fails leaves no trace in memory."""

    def test_failed_apply_check_keeps_previous_domain(self) -> None:
        store = FailingSaveStore()
        domain = run_async(store.add_domain("acct-1", "example.com"))
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(store.apply_check(domain.id, make_probe("example.com", 10)))

        current = run_async(store.get_domain(domain.id))
        assert current.cert_status is CertStatus.UNKNOWN
        assert current.last_checked is None
        assert run_async(store.get_history(domain.id)) == []

    def test_failed_apply_check_does_not_touch_returned_records(self) -> None:
        store = FailingSaveStore()
        domain = run_async(store.add_domain("acct-1", "example.com"))
        first, _ = run_async(store.apply_check(domain.id, make_probe("example.com", 10)))
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(store.apply_check(domain.id, make_probe("example.com", -2)))

        assert first.cert_status is CertStatus.EXPIRING_SOON
        assert run_async(store.get_domain(domain.id)) == first
        assert len(run_async(store.get_history(domain.id))) == 1

    def test_failed_add_can_be_retried(self) -> None:
        store = FailingSaveStore()
        store.fail_saves = True
        with pytest.raises(PersistenceError):
            run_async(store.add_domain("acct-1", "example.com"))
        assert run_async(store.count_domains("acct-1")) == 0

        store.fail_saves = False
        domain = run_async(store.add_domain("acct-1", "example.com"))
        assert run_async(store.find_domain_by_name("acct-1", "example.com")) == domain

    def test_failed_add_checked_domain_leaves_nothing(self) -> None:
        store = FailingSaveStore()
        store.fail_saves = True
        with pytest.raises(PersistenceError):
            run_async(store.add_checked_domain("acct-1", "example.com", make_probe("example.com")))
        assert run_async(store.list_domains()) == []

    def test_failed_delete_keeps_domain_and_history(self) -> None:
        store = FailingSaveStore()
        domain = run_async(store.add_domain("acct-1", "example.com"))
        run_async(store.apply_check(domain.id, make_probe("example.com")))
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(store.delete_domain(domain.id))
        assert run_async(store.get_domain(domain.id)) is not None
        assert len(run_async(store.get_history(domain.id))) == 1

    def test_failed_token_update_keeps_old_token(self) -> None:
        store = FailingSaveStore()
        domain = run_async(store.add_domain("acct-1", "example.com"))
        run_async(store.set_public_token(domain.id, "tok-1"))
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(store.set_public_token(domain.id, "tok-2"))
        assert run_async(store.get_by_public_token("tok-1")).id == domain.id
        assert run_async(store.get_by_public_token("tok-2")) is None

    def test_failed_alert_insert_is_not_recorded(self) -> None:
        store = FailingSaveStore()
        store.fail_saves = True
        with pytest.raises(PersistenceError):
            run_async(store.insert_alert_if_absent(make_alert("d1")))
        store.fail_saves = False
        assert run_async(store.insert_alert_if_absent(make_alert("d1"))) is False

    def test_failed_account_upsert_keeps_previous_account(self) -> None:
        store = FailingSaveStore()
        store.upsert_account(Account(id="acct-1", email="owner@example.com"))
        store.fail_saves = True
        with pytest.raises(PersistenceError):
            store.upsert_account(Account(id="acct-1", email="other@example.com", plan=PlanId.PRO))
        account = run_async(store.get_account("acct-1"))
        assert account.email == "owner@example.com"
        assert account.plan is PlanId.FREE


class TestAddCheckedDomainProperty:
    """A new domain and its first snapshot are written in one step."""

    def test_domain_carries_first_probe(self) -> None:
        store = StateStore(None, "secret", clock=lambda: NOW)
        domain, history = run_async(
            store.add_checked_domain("acct-1", "example.com", make_probe("example.com", 10))
        )
        assert domain.cert_status is CertStatus.EXPIRING_SOON
        assert domain.last_checked == NOW
        assert run_async(store.get_history(domain.id)) == [history]

    def test_duplicate_is_rejected_without_history(self) -> None:
        store = StateStore(None, "secret")
        first, _ = run_async(store.add_checked_domain("acct-1", "example.com", make_probe("example.com")))
        with pytest.raises(DuplicateDomainError):
            run_async(store.add_checked_domain("acct-1", "example.com", make_probe("example.com")))
        assert run_async(store.count_domains("acct-1")) == 1
        assert len(run_async(store.get_history(first.id))) == 1


class TestHistoryRetentionProperty:
    """Only the newest rows per domain are kept once the limit is reached."""

    @given(
        limit=st.integers(min_value=1, max_value=5),
        checks=st.integers(min_value=1, max_value=12),
    )
    @settings(max_examples=50)
    def test_keeps_newest_rows_per_domain(self, limit: int, checks: int) -> None:
        store = StateStore(None, "secret", history_limit=limit)
        domain = run_async(store.add_domain("acct-1", "example.com"))
        other = run_async(store.add_domain("acct-1", "example.org"))
        run_async(store.apply_check(other.id, make_probe("example.org")))

        for offset in range(checks):
            probe = make_probe("example.com")
            probe.checked_at = NOW + timedelta(hours=offset)
            run_async(store.apply_check(domain.id, probe))

        kept = run_async(store.get_history(domain.id, limit=100))
        expected = [NOW + timedelta(hours=h) for h in reversed(range(checks))][:limit]
        assert [h.checked_at for h in kept] == expected
        assert len(run_async(store.get_history(other.id))) == 1

    def test_pruned_history_is_what_gets_saved(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        store = StateStore(path, "secret", history_limit=2)
        domain = run_async(store.add_domain("acct-1", "example.com"))
        for offset in range(4):
            probe = make_probe("example.com")
            probe.checked_at = NOW + timedelta(days=offset)
            run_async(store.apply_check(domain.id, probe))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert len(raw["history"]) == 2
        assert len(run_async(StateStore(path, "secret").get_history(domain.id))) == 2
