"""Unit tests for SubscriptionRegistry (the pending subscription set)."""

import pytest

from orderfeed.runtime.registry import Subscription, SubscriptionRegistry


def test_add_returns_subscription():
    registry = SubscriptionRegistry()
    handler = lambda _: None  # noqa: E731

    sub = registry.add("/topic/orderUpdates", handler)

    assert sub == Subscription("/topic/orderUpdates", handler)
    assert "/topic/orderUpdates" in registry


def test_empty_topic_rejected():
    with pytest.raises(ValueError, match="topic"):
        SubscriptionRegistry().add("", lambda _: None)


def test_topics_in_first_subscription_order():
    registry = SubscriptionRegistry()
    registry.add("b", lambda _: None)
    registry.add("a", lambda _: None)
    registry.add("b", lambda _: None)

    assert registry.topics() == ["b", "a"]
    assert len(registry) == 3


def test_remove_exact_pair_only():
    registry = SubscriptionRegistry()
    h1, h2 = (lambda _: None), (lambda _: None)
    registry.add("t", h1)
    registry.add("t", h2)

    assert registry.remove("t", h1) is True

    assert registry.handlers("t") == (h2,)


def test_remove_from_wrong_topic_is_noop():
    registry = SubscriptionRegistry()
    h = lambda _: None  # noqa: E731
    registry.add("t", h)

    assert registry.remove("other", h) is False
    assert registry.handlers("t") == (h,)


def test_pairs_and_clear():
    registry = SubscriptionRegistry()
    h = lambda _: None  # noqa: E731
    registry.add("x", h)
    registry.add("y", h)

    assert list(registry.pairs()) == [Subscription("x", h), Subscription("y", h)]

    registry.clear()

    assert len(registry) == 0
    assert registry.topics() == []
