import random

import pytest

from scanchat.exceptions import MessageTooLongError, UnknownModelError
from scanchat.llm import Message
from scanchat.token_budget import TokenBudget, select_messages


class _WordCounter:
    def count(self, text: str) -> int:
        return len(text.split())


def _words(word: str, n: int) -> str:
    return " ".join([word] * n)


def _select(messages, model="m", limit=22, reserved=5, browsing_model=None):
    return select_messages(
        messages,
        model,
        counter=_WordCounter(),
        system_prompt="a b",
        limits={"m": limit, "gpt-4": 8000},
        reserved=reserved,
        browsing_model=browsing_model,
    )


def test_single_short_message_is_kept():
    selection = _select([Message("user", "hi")], model="gpt-4")

    assert selection.messages == [Message("user", "hi")]
    assert selection.token_limit == 8000
    assert selection.token_count == 3


def test_selection_is_newest_contiguous_suffix():
    older_tiny = Message("user", "w")
    too_big = Message("assistant", _words("x", 10))
    middle = Message("user", _words("y", 8))
    recent = Message("assistant", _words("z", 2))
    last = Message("user", _words("q", 3))

    selection = _select([older_tiny, too_big, middle, recent, last])

    # older_tiny would still fit on its own but sits behind the overflow.
    assert selection.messages == [middle, recent, last]
    assert selection.token_count == 2 + 3 + 2 + 8


def test_oversized_newest_message_raises():
    with pytest.raises(MessageTooLongError) as exc_info:
        _select([Message("user", "ok"), Message("user", _words("q", 20))])

    assert exc_info.value.token_limit == 22
    assert "22" in str(exc_info.value)


def test_unknown_model_raises():
    with pytest.raises(UnknownModelError) as exc_info:
        _select([Message("user", "hi")], model="llama-2")

    assert str(exc_info.value) == "Error: Model not found"


def test_browsing_model_charges_but_omits_newest_message():
    history = [Message("user", "earlier"), Message("assistant", "reply")]
    last = Message("user", _words("q", 3))

    selection = _select([*history, last], browsing_model="m")

    assert selection.messages == history
    assert selection.token_count == 2 + 3 + 1 + 1


def test_token_budget_arithmetic():
    budget = TokenBudget(limit=10, reserved=3)

    assert budget.fits(7)
    assert not budget.fits(8)
    budget.spend(4)
    assert budget.remaining == 3


def test_newest_message_is_charged_together_with_system_prompt():
    # 2 prompt words + 16 message words + 5 reserved overflows a limit of 22.
    with pytest.raises(MessageTooLongError):
        _select([Message("user", _words("q", 16))])

    selection = _select([Message("user", _words("q", 15))])
    assert selection.token_count == 17


def test_selection_stays_within_budget_for_generated_histories():
    rng = random.Random(1234)
    counter = _WordCounter()
    roles = ("user", "assistant")

    for _ in range(500):
        limit = rng.randint(5, 60)
        reserved = rng.randint(0, 15)
        prompt = _words("p", rng.randint(0, 8))
        messages = [
            Message(rng.choice(roles), _words("w", rng.randint(1, 20)))
            for _ in range(rng.randint(1, 8))
        ]
        prompt_tokens = counter.count(prompt)
        last_tokens = counter.count(messages[-1].content)

        try:
            selection = select_messages(
                messages,
                "m",
                counter=counter,
                system_prompt=prompt,
                limits={"m": limit},
                reserved=reserved,
            )
        except MessageTooLongError:
            assert prompt_tokens + last_tokens + reserved > limit
            continue

        kept = selection.messages
        assert kept == messages[len(messages) - len(kept):]
        assert kept[-1] is messages[-1]
        assert selection.token_count == prompt_tokens + sum(counter.count(m.content) for m in kept)
        assert selection.token_count <= limit - reserved
        if len(kept) < len(messages):
            blocked = messages[len(messages) - len(kept) - 1]
            assert selection.token_count + counter.count(blocked.content) + reserved > limit


def test_browsing_selection_is_marked_without_newest_message():
    assert _select([Message("user", "hi")]).includes_newest is True
    assert _select([Message("user", "hi")], browsing_model="m").includes_newest is False
