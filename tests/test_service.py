import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from family_contest_core import (
    BallotItem,
    ContestError,
    ContestService,
    CoreSettings,
    InMemoryContestStore,
)

T0 = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _service(settings=None):
    clock = _Clock(T0)
    store = InMemoryContestStore()
    service = ContestService(store, settings, clock=clock, rng=random.Random(3))
    return service, store, clock


def _create(service, name="Halloween Photos", sub_hours=24, vote_hours=48):
    return service.create_contest(
        {
            "name": name,
            "description": "Best costume wins",
            "adminSecretHash": "pin-hash",
            "submissionDeadline": (T0 + timedelta(hours=sub_hours)).isoformat(),
            "votingDeadline": (T0 + timedelta(hours=vote_hours)).isoformat(),
        }
    )


def _error_kind(fn, *args, **kwargs):
    with pytest.raises(ContestError) as exc:
        fn(*args, **kwargs)
    return exc.value.kind


def test_create_contest_assigns_unique_slugs():
    service, _, _ = _service()
    first = _create(service)
    second = _create(service)
    assert first.slug == "halloween-photos"
    assert second.slug == "halloween-photos-1"
    assert first.phase == "submission"
    assert first.created_at == T0


def test_create_contest_rejects_bad_deadline_order():
    service, store, _ = _service()
    assert _error_kind(_create, service, sub_hours=48, vote_hours=48) == "invalid_deadline_order"
    assert store.list_contests() == []


def test_create_contest_rejects_malformed_input():
    service, _, _ = _service()
    assert _error_kind(service.create_contest, {"name": "No deadlines"}) == "invalid_input"


def test_unknown_contest_is_not_found():
    service, _, _ = _service()
    assert _error_kind(service.get_contest, "nope") == "not_found"
    assert _error_kind(service.list_entries, "nope") == "not_found"
    assert _error_kind(service.create_entry, "nope", "Ana", "a.jpg") == "not_found"


def test_public_contest_hides_admin_hash():
    service, _, _ = _service()
    contest = _create(service)
    service.create_entry(contest.slug, "Ana", "a.jpg")
    payload = service.get_public_contest(contest.slug)
    assert "admin_secret_hash" not in payload
    assert "pin-hash" not in payload.values()
    assert payload["entryCount"] == 1
    assert payload["currentPhase"] == "submission"


def test_list_contests_newest_first_and_phase_resolved():
    service, _, clock = _service()
    old = _create(service, name="Old")
    clock.advance(hours=1)
    new = _create(service, name="New", sub_hours=100, vote_hours=200)
    clock.advance(hours=30)
    listed = service.list_contests()
    assert [c["slug"] for c in listed] == [new.slug, old.slug]
    assert listed[1]["currentPhase"] == "voting"
    assert listed[0]["currentPhase"] == "submission"


def test_phase_change_is_persisted_on_read():
    service, store, clock = _service()
    contest = _create(service)
    clock.advance(hours=25)
    assert service.get_contest(contest.slug).phase == "voting"
    assert store.get_contest(contest.slug).phase == "voting"


def test_submission_phase_listing_never_leaks_entries():
    service, _, _ = _service()
    contest = _create(service)
    for name in ("Ana", "Bob", "Cara"):
        service.create_entry(contest.slug, name, f"{name}.jpg")
    payload = service.list_entries(contest.slug).as_payload()
    assert payload == {"phase": "submission", "entries": [], "entryCount": 3}


def test_duplicate_names_rejected_case_insensitively_within_contest_only():
    service, _, _ = _service()
    first = _create(service, name="One")
    second = _create(service, name="Two")
    service.create_entry(first.slug, "Grandma Jo", "a.jpg")
    assert _error_kind(service.create_entry, first.slug, "grandma JO", "b.jpg") == "duplicate_name"
    assert _error_kind(service.create_entry, first.slug, "  Grandma Jo ", "c.jpg") == "duplicate_name"
    entry = service.create_entry(second.slug, "GRANDMA JO", "d.jpg")
    assert entry.name == "GRANDMA JO"


def test_entries_only_accepted_during_submission():
    service, _, clock = _service()
    contest = _create(service)
    clock.advance(hours=24)
    assert _error_kind(service.create_entry, contest.slug, "Late", "late.jpg") == "phase_closed"


def test_over_length_names_are_rejected_not_truncated():
    service, store, _ = _service(CoreSettings(max_entry_name_length=5, max_contest_name_length=8))
    contest = _create(service, name="Pumpkins")
    assert _error_kind(service.create_entry, contest.slug, "Bartholomew", "b.jpg") == "invalid_input"
    assert store.count_entries(contest.slug) == 0
    assert service.create_entry(contest.slug, "Barth", "b.jpg").name == "Barth"
    assert _error_kind(_create, service, name="Pumpkins 2024") == "invalid_input"
    assert [c.slug for c in store.list_contests()] == [contest.slug]


def test_voting_listing_is_anonymous():
    service, _, clock = _service()
    contest = _create(service)
    for name in ("Ana", "Bob", "Cara", "Dan", "Eve", "Fay"):
        service.create_entry(contest.slug, name, f"{name}.jpg")
    clock.advance(hours=30)
    orders = set()
    for _ in range(10):
        payload = service.list_entries(contest.slug).as_payload()
        assert payload["phase"] == "voting"
        assert all("name" not in item for item in payload["entries"])
        orders.add(tuple(item["id"] for item in payload["entries"]))
    assert len(orders) > 1


def test_second_ballot_replaces_first():
    service, _, clock = _service()
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    b = service.create_entry(contest.slug, "Bob", "b.jpg")
    c = service.create_entry(contest.slug, "Cara", "c.jpg")
    clock.advance(hours=30)

    service.cast_vote(contest.slug, "voter-1", [{"entryId": a.id, "rank": 1}, {"entryId": b.id, "rank": 2}])
    service.cast_vote(contest.slug, "voter-1", [BallotItem(entry_id=c.id, rank=1)])

    ballot = service.get_voter_ballot(contest.slug, "voter-1")
    assert [(v.entry_id, v.rank) for v in ballot] == [(c.id, 1)]
    assert service.get_voter_ballot(contest.slug, "someone-else") == ()


def test_invalid_ballot_leaves_previous_ballot_untouched():
    service, _, clock = _service()
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    b = service.create_entry(contest.slug, "Bob", "b.jpg")
    clock.advance(hours=30)
    service.cast_vote(contest.slug, "v", [{"entryId": a.id, "rank": 1}])

    bad = [{"entryId": a.id, "rank": 1}, {"entryId": b.id, "rank": 1}]
    assert _error_kind(service.cast_vote, contest.slug, "v", bad) == "duplicate_rank"
    assert [(v.entry_id, v.rank) for v in service.get_voter_ballot(contest.slug, "v")] == [(a.id, 1)]


def test_ballot_errors_surface_with_kinds():
    service, _, clock = _service()
    contest = _create(service)
    ids = [service.create_entry(contest.slug, n, f"{n}.jpg").id for n in ("A", "B", "C", "D")]
    assert _error_kind(service.cast_vote, contest.slug, "v", [{"entryId": ids[0], "rank": 1}]) == "phase_closed"
    clock.advance(hours=30)
    four = [{"entryId": eid, "rank": min(i + 1, 3)} for i, eid in enumerate(ids)]
    assert _error_kind(service.cast_vote, contest.slug, "v", four) == "too_many_selections"
    twice = [{"entryId": ids[0], "rank": 1}, {"entryId": ids[0], "rank": 2}]
    assert _error_kind(service.cast_vote, contest.slug, "v", twice) == "duplicate_entry"
    assert _error_kind(service.cast_vote, contest.slug, "v", [{"entryId": 999, "rank": 1}]) == "unknown_entry"
    assert _error_kind(service.cast_vote, contest.slug, "", [{"entryId": ids[0], "rank": 1}]) == "invalid_input"


def test_voter_ids_are_kept_exactly_as_sent():
    service, store, clock = _service(CoreSettings(max_voter_id_length=512))
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    b = service.create_entry(contest.slug, "Bob", "b.jpg")
    clock.advance(hours=30)
    voters = ["x" * 128 + "-alice", "x" * 128 + "-bob", " carol", "carol"]
    for i, voter in enumerate(voters):
        entry = a if i % 2 == 0 else b
        service.cast_vote(contest.slug, voter, [{"entryId": entry.id, "rank": 1}])

    assert len(store.list_votes(contest.slug)) == 4
    assert [v.entry_id for v in service.get_voter_ballot(contest.slug, " carol")] == [a.id]
    assert [v.entry_id for v in service.get_voter_ballot(contest.slug, "carol")] == [b.id]
    assert [v.entry_id for v in service.get_voter_ballot(contest.slug, voters[1])] == [b.id]


def test_over_length_voter_id_is_rejected():
    service, store, clock = _service()
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    clock.advance(hours=30)
    long_id = "x" * 128 + "-alice"
    assert _error_kind(service.cast_vote, contest.slug, long_id, [{"entryId": a.id, "rank": 1}]) == "invalid_input"
    assert _error_kind(service.get_voter_ballot, contest.slug, long_id) == "invalid_input"
    assert store.list_votes(contest.slug) == []
    service.cast_vote(contest.slug, "x" * 128, [{"entryId": a.id, "rank": 1}])
    assert len(store.list_votes(contest.slug)) == 1


def test_non_list_ballot_is_invalid_input():
    service, _, clock = _service()
    contest = _create(service)
    clock.advance(hours=30)
    assert _error_kind(service.cast_vote, contest.slug, "v", 5) == "invalid_input"
    assert _error_kind(service.cast_vote, contest.slug, "v", None) == "invalid_input"


class _InterleavingStore(InMemoryContestStore):
    """Runs ``on_list`` on another thread right after entries are read."""

    def __init__(self):
        super().__init__()
        self.on_list = None
        self.worker_blocked = None

    def list_entries(self, slug):
        entries = super().list_entries(slug)
        if self.on_list is not None:
            action, self.on_list = self.on_list, None
            self.worker = threading.Thread(target=action)
            self.worker.start()
            self.worker.join(timeout=0.2)
            self.worker_blocked = self.worker.is_alive()
        return entries


def test_admin_delete_and_close_cannot_interleave_with_vote():
    clock = _Clock(T0)
    store = _InterleavingStore()
    service = ContestService(store, clock=clock)
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    b = service.create_entry(contest.slug, "Bob", "b.jpg")
    clock.advance(hours=30)
    errors = []

    def delete_and_close():
        try:
            service.admin_delete_entry(contest.slug, a.id, is_admin=True)
            service.admin_update(contest.slug, {"currentPhase": "results"}, is_admin=True)
        except ContestError as exc:
            errors.append(exc)

    store.on_list = delete_and_close
    service.cast_vote(contest.slug, "v", [{"entryId": a.id, "rank": 1}, {"entryId": b.id, "rank": 2}])
    store.worker.join()

    # The admin thread waited for the vote to finish, then its delete cascaded.
    assert store.worker_blocked is True
    assert errors == []
    assert store.get_contest(contest.slug).phase == "results"
    assert [(v.entry_id, v.rank) for v in store.list_votes(contest.slug)] == [(b.id, 2)]


def test_full_flow_results_are_scored_and_revealed():
    service, _, clock = _service()
    contest = _create(service)
    a = service.create_entry(contest.slug, "A", "a.jpg")
    b = service.create_entry(contest.slug, "B", "b.jpg")
    c = service.create_entry(contest.slug, "C", "c.jpg")
    clock.advance(hours=30)
    service.cast_vote(
        contest.slug,
        "voter1",
        [{"entryId": a.id, "rank": 1}, {"entryId": b.id, "rank": 2}, {"entryId": c.id, "rank": 3}],
    )
    service.cast_vote(contest.slug, "voter2", [{"entryId": b.id, "rank": 1}, {"entryId": a.id, "rank": 2}])
    clock.advance(hours=30)

    payload = service.list_entries(contest.slug).as_payload()
    assert payload["phase"] == "results"
    scores = {item["name"]: item["score"] for item in payload["entries"]}
    assert scores == {"A": 5, "B": 5, "C": 1}
    assert payload["entries"][-1]["name"] == "C"
    # Tie between A and B goes to the earlier submission.
    assert [item["name"] for item in payload["entries"]] == ["A", "B", "C"]
    assert _error_kind(service.cast_vote, contest.slug, "voter3", [{"entryId": c.id, "rank": 1}]) == "phase_closed"


def test_first_read_after_both_deadlines_skips_voting():
    service, store, clock = _service()
    contest = _create(service)
    service.create_entry(contest.slug, "Ana", "a.jpg")
    clock.advance(days=10)
    view = service.list_entries(contest.slug)
    assert view.phase == "results"
    assert [row.name for row in view.entries] == ["Ana"]
    assert store.get_contest(contest.slug).phase == "results"


def test_admin_list_entries_requires_flag_and_shows_names():
    service, _, _ = _service()
    contest = _create(service)
    service.create_entry(contest.slug, "Ana", "a.jpg")
    service.create_entry(contest.slug, "Bob", "b.jpg")
    assert _error_kind(service.admin_list_entries, contest.slug, is_admin=False) == "forbidden"
    assert [e.name for e in service.admin_list_entries(contest.slug, is_admin=True)] == ["Ana", "Bob"]


def test_admin_delete_entry_cascades_votes():
    service, store, clock = _service()
    contest = _create(service)
    a = service.create_entry(contest.slug, "Ana", "a.jpg")
    b = service.create_entry(contest.slug, "Bob", "b.jpg")
    clock.advance(hours=30)
    service.cast_vote(contest.slug, "v", [{"entryId": a.id, "rank": 1}, {"entryId": b.id, "rank": 2}])

    assert _error_kind(service.admin_delete_entry, contest.slug, a.id, is_admin=False) == "forbidden"
    removed = service.admin_delete_entry(contest.slug, a.id, is_admin=True)
    assert removed.image_ref == "a.jpg"
    assert [(v.entry_id, v.rank) for v in service.get_voter_ballot(contest.slug, "v")] == [(b.id, 2)]
    assert all(v.entry_id != a.id for v in store.list_votes(contest.slug))
    assert _error_kind(service.admin_delete_entry, contest.slug, a.id, is_admin=True) == "not_found"


def test_admin_deadline_edit_rejected_leaves_state_unchanged():
    service, store, _ = _service()
    contest = _create(service)
    before = store.get_contest(contest.slug)
    bad = {
        "submissionDeadline": (T0 + timedelta(days=3)).isoformat(),
        "votingDeadline": (T0 + timedelta(days=2)).isoformat(),
        "currentPhase": "voting",
    }
    assert _error_kind(service.admin_update, contest.slug, bad, is_admin=True) == "invalid_deadline_order"
    assert store.get_contest(contest.slug) == before
    assert _error_kind(service.admin_update, contest.slug, {"currentPhase": "voting"}, is_admin=False) == "forbidden"
    assert store.get_contest(contest.slug) == before


def test_admin_forced_phase_and_lazy_reresolution():
    service, _, clock = _service()
    contest = _create(service)
    forced = service.admin_update(contest.slug, {"currentPhase": "results"}, is_admin=True)
    assert forced.phase == "results"
    assert service.get_contest(contest.slug).phase == "results"

    # Regress to submission after the submission deadline: the next read moves it forward again.
    clock.advance(hours=30)
    service.admin_update(contest.slug, {"currentPhase": "submission"}, is_admin=True)
    assert service.get_contest(contest.slug).phase == "voting"


def test_admin_extending_deadline_keeps_contest_open():
    service, _, clock = _service()
    contest = _create(service)
    clock.advance(hours=25)
    updated = service.admin_update(
        contest.slug,
        {
            "submissionDeadline": (T0 + timedelta(hours=72)).isoformat(),
            "votingDeadline": (T0 + timedelta(hours=96)).isoformat(),
        },
        is_admin=True,
    )
    assert updated.phase == "submission"
    assert service.get_contest(contest.slug).phase == "submission"
    service.create_entry(contest.slug, "Latecomer", "late.jpg")


def test_concurrent_same_name_submissions_create_one_entry():
    service, store, _ = _service()
    contest = _create(service)
    outcomes = []

    def submit(i):
        try:
            service.create_entry(contest.slug, "Same Name", f"{i}.jpg")
            outcomes.append("ok")
        except ContestError as exc:
            outcomes.append(exc.kind)

    threads = [threading.Thread(target=submit, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate_name") == 7
    assert store.count_entries(contest.slug) == 1
