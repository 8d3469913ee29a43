import pytest

from conftest import COOLDOWN, FlakyStore
from coupon_claims.errors import ClaimError
from coupon_claims.models import ClaimStatus


def test_rotation_scenario(make_coordinator, store):
    coordinator = make_coordinator(("A", "B", "C"))

    first = coordinator.attempt_claim("1.1.1.1")
    assert first.status == ClaimStatus.ASSIGNED
    assert first.coupon == "A"
    assert store.rotation_position() == 1

    assert coordinator.attempt_claim("2.2.2.2").coupon == "B"
    assert store.rotation_position() == 2

    again = coordinator.attempt_claim("1.1.1.1")
    assert again.status == ClaimStatus.REJECTED
    assert again.error == ClaimError.ALREADY_CLAIMED_IDENTITY

    assert coordinator.attempt_claim("3.3.3.3").coupon == "C"
    assert store.rotation_position() == 0

    assert coordinator.attempt_claim("4.4.4.4").coupon == "A"


def test_first_n_claims_follow_pool_order(make_coordinator):
    codes = tuple(f"CODE{i}" for i in range(6))
    coordinator = make_coordinator(codes)

    issued = [coordinator.attempt_claim(f"10.0.0.{i}").coupon for i in range(4)]

    assert issued == list(codes[:4])


def test_pointer_wraps_after_full_pass(make_coordinator, store):
    codes = ("X", "Y", "Z", "W")
    coordinator = make_coordinator(codes)

    issued = [coordinator.attempt_claim(f"10.0.1.{i}").coupon for i in range(len(codes))]

    assert issued == list(codes)
    assert coordinator.rotation.peek() == 0
    assert coordinator.attempt_claim("10.0.1.99").coupon == "X"


def test_identity_retry_after_counts_down(make_coordinator, clock):
    coordinator = make_coordinator()
    assert coordinator.attempt_claim("5.5.5.5").ok

    claimed_at = clock.now
    waits = []
    for elapsed in (1, 600, 1800, 3599, 3599.5):
        clock.now = claimed_at + elapsed
        outcome = coordinator.attempt_claim("5.5.5.5")
        assert outcome.error == ClaimError.ALREADY_CLAIMED_IDENTITY
        waits.append(outcome.retry_after_seconds)

    assert waits == [3599, 3000, 1800, 1, 1]
    assert all(wait >= 1 for wait in waits)


def test_identity_can_claim_again_after_cooldown(make_coordinator, clock):
    coordinator = make_coordinator()
    assert coordinator.attempt_claim("5.5.5.5").coupon == "A"

    clock.advance(COOLDOWN)

    outcome = coordinator.attempt_claim("5.5.5.5")
    assert outcome.ok
    assert outcome.coupon == "B"


def test_session_marker_blocks_other_identity_until_expiry(make_coordinator, clock):
    coordinator = make_coordinator()
    marker = coordinator.attempt_claim("6.6.6.6").session_marker
    assert marker

    clock.advance(COOLDOWN - 1)
    blocked = coordinator.attempt_claim("7.7.7.7", marker)
    assert blocked.status == ClaimStatus.REJECTED
    assert blocked.error == ClaimError.ALREADY_CLAIMED_SESSION
    assert blocked.retry_after_seconds is None

    clock.advance(1)
    assert coordinator.attempt_claim("7.7.7.7", marker).ok


def test_session_check_runs_before_any_store_access(make_coordinator, signer):
    flaky = FlakyStore()
    coordinator = make_coordinator(claim_store=flaky)

    outcome = coordinator.attempt_claim("8.8.8.8", signer.mint())

    assert outcome.error == ClaimError.ALREADY_CLAIMED_SESSION
    assert flaky.calls == []


def test_forged_marker_is_ignored(make_coordinator):
    coordinator = make_coordinator()

    outcome = coordinator.attempt_claim("9.9.9.9", "not-a-real-token")

    assert outcome.ok


def test_empty_pool_is_rejected_without_mutation(make_coordinator, store):
    coordinator = make_coordinator(())

    outcome = coordinator.attempt_claim("1.2.3.4")

    assert outcome.status == ClaimStatus.REJECTED
    assert outcome.error == ClaimError.POOL_EMPTY
    assert outcome.session_marker is None
    assert store.rotation_position() == 0
    assert store.last_claimed_at("1.2.3.4") is None
    assert store.history_for("1.2.3.4") == []


@pytest.mark.parametrize("failing", ["last_claimed_at", "advance_rotation"])
def test_store_failure_before_allocation_has_no_side_effects(make_coordinator, failing):
    flaky = FlakyStore(fail_on={failing})
    coordinator = make_coordinator(claim_store=flaky)

    outcome = coordinator.attempt_claim("1.2.3.4")

    assert outcome.status == ClaimStatus.FAILED
    assert outcome.error == ClaimError.STORE_UNAVAILABLE
    assert outcome.session_marker is None
    assert outcome.coupon is None
    assert "record_claim" not in flaky.calls
    assert "append_history" not in flaky.calls

    flaky.fail_on.clear()
    retry = coordinator.attempt_claim("1.2.3.4")
    assert retry.ok
    assert retry.coupon == "A"


def test_history_failure_still_assigns_and_schedules_repair(make_coordinator):
    flaky = FlakyStore(fail_on={"append_history"})
    repairs = []
    coordinator = make_coordinator(claim_store=flaky, on_history_failure=repairs.append)

    outcome = coordinator.attempt_claim("1.2.3.4")

    assert outcome.ok
    assert outcome.coupon == "A"
    assert outcome.session_marker
    assert flaky.last_claimed_at("1.2.3.4") is not None
    assert [(e.coupon, e.identity) for e in repairs] == [("A", "1.2.3.4")]


def test_broken_repair_hook_does_not_surface(make_coordinator):
    def explode(entry):
        raise RuntimeError("broker down")

    flaky = FlakyStore(fail_on={"append_history"})
    coordinator = make_coordinator(claim_store=flaky, on_history_failure=explode)

    assert coordinator.attempt_claim("1.2.3.4").ok


def test_record_failure_after_allocation_still_assigns(make_coordinator):
    flaky = FlakyStore(fail_on={"record_claim"})
    coordinator = make_coordinator(claim_store=flaky)

    outcome = coordinator.attempt_claim("1.2.3.4")

    assert outcome.ok
    assert flaky.rotation_position() == 1
    assert [e.coupon for e in flaky.history_for("1.2.3.4")] == ["A"]


def test_history_is_per_identity_and_chronological(make_coordinator, clock):
    coordinator = make_coordinator(("A", "B", "C"))

    coordinator.attempt_claim("1.1.1.1")
    coordinator.attempt_claim("2.2.2.2")
    clock.advance(COOLDOWN)
    coordinator.attempt_claim("1.1.1.1")
    coordinator.attempt_claim("3.3.3.3")

    history = coordinator.history("1.1.1.1")
    assert [e.coupon for e in history] == ["A", "C"]
    assert all(e.identity == "1.1.1.1" for e in history)
    assert history[0].claimed_at < history[1].claimed_at
    assert coordinator.history("9.9.9.9") == []


def test_empty_identity_is_a_caller_error(make_coordinator):
    with pytest.raises(ValueError):
        make_coordinator().attempt_claim("")


def test_claim_stamped_ahead_of_local_clock_never_exceeds_cooldown(make_coordinator, store, clock):
    store.record_claim("5.5.5.5", clock.now + 500, COOLDOWN)
    coordinator = make_coordinator()

    outcome = coordinator.attempt_claim("5.5.5.5")

    assert outcome.error == ClaimError.ALREADY_CLAIMED_IDENTITY
    assert outcome.retry_after_seconds == COOLDOWN
