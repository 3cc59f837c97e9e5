"""Tests for word bank service."""
from datetime import UTC, date, datetime, timedelta, timezone

import pytest
from faker import Faker
from sqlalchemy.orm import Session

from conftest import T0
from spellcoach.exceptions import (
    InsufficientWordsError,
    InvalidWordError,
    LearnerNotFoundError,
    WordNotFoundError,
)
from spellcoach.models.models import Attempt, Learner
from spellcoach.models.word_models import (
    AddWordOutcome,
    AttemptKey,
    AttemptOutcome,
    IntroductionMode,
    WordState,
)
from spellcoach.services.introduction_gate import IntroductionGate
from spellcoach.services.mastery_tracker import MasteryPolicy, MasteryTracker, get_word_state
from spellcoach.services.session_selector import SessionSelector
from spellcoach.services.word_bank_service import WordBankService
from spellcoach.services.word_list_cache import WordListCache

fake = Faker()


@pytest.fixture
def word_bank_service(db: Session) -> WordBankService:
    """Create a service with fixed engine settings."""
    tracker = MasteryTracker(MasteryPolicy())
    return WordBankService(
        db,
        tracker=tracker,
        gate=IntroductionGate(daily_cap=10),
        selector=SessionSelector(min_words_per_session=5, policy=tracker.policy),
    )


@pytest.fixture
def test_learner(word_bank_service: WordBankService) -> Learner:
    """Create a test learner."""
    return word_bank_service.get_or_create_learner(fake.user_name())


def word_id(service: WordBankService, learner: Learner, text: str) -> str:
    return service.get_word_bank(learner.id).find(text).id


def test_get_or_create_learner(word_bank_service: WordBankService) -> None:
    first = word_bank_service.get_or_create_learner("maya")
    second = word_bank_service.get_or_create_learner("maya")
    assert first.id == second.id
    assert word_bank_service.get_learner(first.id).name == "maya"


def test_unknown_learner(word_bank_service: WordBankService) -> None:
    with pytest.raises(LearnerNotFoundError):
        word_bank_service.get_word_bank(9999)


def test_add_word(word_bank_service: WordBankService, test_learner: Learner) -> None:
    assert word_bank_service.add_word(test_learner.id, "Elephant", definition="A large animal")
    bank = word_bank_service.get_word_bank(test_learner.id)
    [word] = bank.words
    assert word.text == "elephant"
    assert word.definition == "A large animal"
    assert word.introduced_at is not None
    assert word.mastery_level == 0


def test_add_duplicate_word_returns_false(word_bank_service: WordBankService, test_learner: Learner) -> None:
    assert word_bank_service.add_word(test_learner.id, "cat")
    assert word_bank_service.add_word(test_learner.id, " CAT ") is False
    assert len(word_bank_service.get_word_bank(test_learner.id).words) == 1


@pytest.mark.parametrize("text", ["", "a", "c4t", "two words", "x" * 21])
def test_add_invalid_word_raises(word_bank_service: WordBankService, test_learner: Learner, text: str) -> None:
    with pytest.raises(InvalidWordError):
        word_bank_service.add_word(test_learner.id, text)


def test_add_words_reports_each_outcome(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_word(test_learner.id, "tiger")
    outcomes = word_bank_service.add_words(test_learner.id, ["cat", "Dog", "CAT", "x", "tiger"])
    assert outcomes == [
        ("cat", AddWordOutcome.ADDED),
        ("Dog", AddWordOutcome.ADDED),
        ("CAT", AddWordOutcome.DUPLICATE),
        ("x", AddWordOutcome.INVALID),
        ("tiger", AddWordOutcome.DUPLICATE),
    ]
    bank = word_bank_service.get_word_bank(test_learner.id)
    assert sorted(word.text for word in bank.words) == ["cat", "dog", "tiger"]
    assert bank.find("dog").introduced_at is None


def test_add_words_keeps_repeated_text(word_bank_service: WordBankService, test_learner: Learner) -> None:
    outcomes = word_bank_service.add_words(test_learner.id, ["cat", "cat"])
    assert outcomes == [("cat", AddWordOutcome.ADDED), ("cat", AddWordOutcome.DUPLICATE)]
    assert [word.text for word in word_bank_service.get_word_bank(test_learner.id).words] == ["cat"]


def test_archive_and_restore(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_word(test_learner.id, "giraffe")
    wid = word_id(word_bank_service, test_learner, "giraffe")
    word_bank_service.record_attempt(test_learner.id, wid, "s1:g:0", "giraffe", True, "practice", timestamp=T0)
    before = word_bank_service.get_word(test_learner.id, wid)

    archived = word_bank_service.archive_word(test_learner.id, wid)
    assert not archived.is_active
    assert archived.archived_at is not None
    assert archived.attempt_history == before.attempt_history
    assert get_word_state(archived, word_bank_service.tracker.policy) is get_word_state(before, word_bank_service.tracker.policy)

    restored = word_bank_service.unarchive_word(test_learner.id, wid)
    assert restored == before


def test_remove_word_deletes_history(word_bank_service: WordBankService, test_learner: Learner, db: Session) -> None:
    word_bank_service.add_word(test_learner.id, "zebra")
    wid = word_id(word_bank_service, test_learner, "zebra")
    word_bank_service.record_attempt(test_learner.id, wid, "s1:z:0", "zebra", True, "practice", timestamp=T0)

    assert word_bank_service.remove_word(test_learner.id, wid)
    with pytest.raises(WordNotFoundError):
        word_bank_service.get_word(test_learner.id, wid)
    assert db.query(Attempt).count() == 0
    assert word_bank_service.remove_word(test_learner.id, wid) is False


def test_record_attempt_updates_mastery(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_word(test_learner.id, "castle")
    wid = word_id(word_bank_service, test_learner, "castle")

    for n in range(4):
        key = AttemptKey(session_id="s1", word_id=wid, sequence=n)
        word_bank_service.record_attempt(
            test_learner.id, wid, key, "castle", True, "practice", time_ms=2000, timestamp=T0 + timedelta(seconds=n)
        )
    result = word_bank_service.record_attempt(
        test_learner.id, wid, AttemptKey("s1", wid, 4), "casle", False, "practice", timestamp=T0 + timedelta(seconds=5)
    )

    assert result.outcome is AttemptOutcome.INCORRECT
    stored = word_bank_service.get_word(test_learner.id, wid)
    assert stored.mastery_level == 3
    assert stored.times_used == 5
    assert stored.last_attempt_at == T0 + timedelta(seconds=5)
    assert [a.typed_text for a in stored.attempt_history][-1] == "casle"


def test_replayed_attempt_changes_nothing(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_word(test_learner.id, "castle")
    wid = word_id(word_bank_service, test_learner, "castle")
    key = AttemptKey("s1", wid, 0)

    first = word_bank_service.record_attempt(test_learner.id, wid, key, "castle", True, "practice", timestamp=T0)
    replay = word_bank_service.record_attempt(
        test_learner.id, wid, key, "castle", True, "practice", timestamp=T0 + timedelta(minutes=1)
    )

    assert first.outcome is AttemptOutcome.CORRECT
    assert replay.outcome is AttemptOutcome.REPLAYED
    stored = word_bank_service.get_word(test_learner.id, wid)
    assert stored.mastery_level == 1
    assert stored.times_used == 1


def test_first_attempt_introduces_gradual_word(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["rocket", "planet"])
    rocket = word_id(word_bank_service, test_learner, "rocket")

    word_bank_service.record_attempt(test_learner.id, rocket, "s1:r:0", "roket", False, "practice", timestamp=T0)
    word_bank_service.record_attempt(test_learner.id, rocket, "s1:r:1", "rocket", True, "practice", timestamp=T0)

    bank = word_bank_service.get_word_bank(test_learner.id)
    assert bank.find("rocket").introduced_at == T0
    assert bank.find("planet").introduced_at is None
    assert bank.new_words_introduced_today == 1
    assert bank.last_new_word_date == T0.date()


def test_late_offline_introduction_keeps_todays_budget(db: Session) -> None:
    service = WordBankService(db, gate=IntroductionGate(daily_cap=2))
    learner = service.get_or_create_learner(fake.user_name())
    service.add_words(learner.id, ["apple", "berry", "cherry"])

    for n, text in enumerate(["apple", "berry"]):
        wid = word_id(service, learner, text)
        service.record_attempt(learner.id, wid, f"s1:{n}", text, True, "practice", timestamp=T0)
    bank = service.get_word_bank(learner.id)
    assert service.gate.can_introduce_new_words(bank, T0.date()).remaining == 0

    cherry = word_id(service, learner, "cherry")
    service.record_attempt(
        learner.id, cherry, "offline:0", "cherry", True, "offline", timestamp=T0 - timedelta(days=1)
    )
    bank = service.get_word_bank(learner.id)
    assert bank.last_new_word_date == T0.date()
    assert bank.new_words_introduced_today == 3
    assert service.gate.can_introduce_new_words(bank, T0.date()).remaining == 0


def test_introduction_day_is_taken_in_utc(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["rocket"])
    wid = word_id(word_bank_service, test_learner, "rocket")
    evening = datetime(2026, 3, 2, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    word_bank_service.record_attempt(test_learner.id, wid, "s1:r:0", "rocket", True, "practice", timestamp=evening)
    bank = word_bank_service.get_word_bank(test_learner.id)
    assert bank.last_new_word_date == date(2026, 3, 3)


def test_immediate_word_does_not_use_budget(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_word(test_learner.id, "rocket", IntroductionMode.IMMEDIATE)
    wid = word_id(word_bank_service, test_learner, "rocket")
    word_bank_service.record_attempt(test_learner.id, wid, "s1:r:0", "rocket", True, "practice", timestamp=T0)
    assert word_bank_service.get_word_bank(test_learner.id).new_words_introduced_today == 0


def test_force_introduce_word(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["comet"])
    wid = word_id(word_bank_service, test_learner, "comet")
    word = word_bank_service.force_introduce_word(test_learner.id, wid)
    assert word.introduced_at is not None
    assert get_word_state(word, word_bank_service.tracker.policy) is WordState.LEARNING


def test_start_session_respects_new_word_budget(
    word_bank_service: WordBankService, test_learner: Learner, db: Session
) -> None:
    now = datetime.now(UTC)
    word_bank_service.add_words(test_learner.id, ["apple", "berry", "cherry", "grape", "lemon", "mango"])
    test_learner.new_words_introduced_today = 8
    test_learner.last_new_word_date = now.date()
    db.commit()

    plan = word_bank_service.start_session(test_learner.id, max_words=10, now=now)
    assert len(plan) == 2
    assert plan.words_to_introduce == plan.words


def test_start_session_pauses_new_words_while_many_are_learning(
    word_bank_service: WordBankService, test_learner: Learner
) -> None:
    learning = [f"learn{c}" for c in "abcdefghijklmno"]
    word_bank_service.add_words(test_learner.id, learning, IntroductionMode.IMMEDIATE)
    word_bank_service.add_words(test_learner.id, ["queued", "pending"])

    bank = word_bank_service.get_word_bank(test_learner.id)
    decision = word_bank_service.gate.can_introduce_new_words(bank)
    assert decision.remaining == 0
    assert decision.reason == "Too many words being learned (15). Master some first!"

    plan = word_bank_service.start_session(test_learner.id, max_words=20)
    assert plan.words_to_introduce == []
    assert sorted(plan.words) == learning


def test_start_session_introduces_at_most_two_words(db: Session) -> None:
    tracker = MasteryTracker(MasteryPolicy())
    service = WordBankService(
        db,
        tracker=tracker,
        gate=IntroductionGate(daily_cap=10, learning_pause=15),
        selector=SessionSelector(
            min_words_per_session=5, policy=tracker.policy, max_new_words_per_session=2, max_new_word_share=0.25
        ),
    )
    learner = service.get_or_create_learner(fake.user_name())
    service.add_words(learner.id, [f"known{c}" for c in "abcdefghij"], IntroductionMode.IMMEDIATE)
    service.add_words(learner.id, [f"fresh{c}" for c in "abcdef"])

    plan = service.start_session(learner.id, max_words=12)
    assert plan.words_to_introduce == ["fresha", "freshb"]
    assert len(plan) == 12


def test_start_session_with_too_few_words(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["apple", "berry", "cherry"], IntroductionMode.IMMEDIATE)
    with pytest.raises(InsufficientWordsError):
        word_bank_service.start_session(test_learner.id)


def test_start_session_orders_by_mastery(word_bank_service: WordBankService, test_learner: Learner) -> None:
    texts = ["apple", "berry", "cherry", "grape", "lemon"]
    word_bank_service.add_words(test_learner.id, texts, IntroductionMode.IMMEDIATE)
    grape = word_id(word_bank_service, test_learner, "grape")
    word_bank_service.record_attempt(test_learner.id, grape, "s1:g:0", "grape", True, "practice", timestamp=T0)

    plan = word_bank_service.start_session(test_learner.id, max_words=5)
    assert plan.words[-1] == "grape"
    assert sorted(plan.words) == texts


def test_word_bank_cache(word_bank_service: WordBankService, test_learner: Learner) -> None:
    cache = WordListCache(max_age_seconds=60)
    word_bank_service.add_word(test_learner.id, "apple")
    first = word_bank_service.get_word_bank(test_learner.id, cache)
    word_bank_service.add_word(test_learner.id, "berry")

    assert word_bank_service.get_word_bank(test_learner.id, cache) is first
    cache.invalidate()
    assert len(word_bank_service.get_word_bank(test_learner.id, cache).words) == 2


def test_export_rows(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["pear", "fig"])
    rows = word_bank_service.get_export_rows(test_learner.id)
    assert [row.word for row in rows] == ["fig", "pear"]
    assert {row.status for row in rows} == {"Waiting"}


def test_dashboard(word_bank_service: WordBankService, test_learner: Learner) -> None:
    word_bank_service.add_words(test_learner.id, ["apple", "berry", "cherry"], IntroductionMode.IMMEDIATE)
    apple = word_id(word_bank_service, test_learner, "apple")
    for n, typed in enumerate(["aple", "appel", "apple", "aple"]):
        word_bank_service.record_attempt(
            test_learner.id, apple, f"s1:a:{n}", typed, typed == "apple", "practice", timestamp=T0 + timedelta(minutes=n)
        )

    dashboard = word_bank_service.get_dashboard(test_learner.id, now=T0 + timedelta(hours=1))
    assert dashboard.total_words == 3
    assert dashboard.active_words == 3
    assert dashboard.mastered_words == 0
    assert dashboard.words_due == 3
    assert dashboard.accuracy == pytest.approx(0.25)
    assert dashboard.streak == 1
    assert dashboard.can_introduce
    assert dashboard.mission.title == "3 words ready to practice!"
    assert [item.word.text for item in dashboard.struggling] == ["apple"]
    assert any(a.id == "first-timer" and a.is_earned for a in dashboard.achievements)


if __name__ == "__main__":
    pytest.main([__file__])
