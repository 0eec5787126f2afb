"""
Tests for Hookz predicates: is_provider, is_not, some, every

Run with: pytest tests/test_predicates.py -v
"""

import asyncio
import inspect

import pytest

from hookz import (
    Condition,
    HookContext,
    MethodNotAllowed,
    Predicate,
    PredicateCombinator,
    evaluate_predicate,
    every,
    is_not,
    is_provider,
    predicate,
    some,
)

# =============================================================================
# Test Fixtures
# =============================================================================


def make_ctx(provider=None):
    params = {"provider": provider} if provider is not None else {}
    return HookContext("find", params=params)


def returns(value, delay=None):
    """Build a sync predicate, or an async one when delay is given."""
    if delay is None:
        return lambda ctx: value

    async def pred(ctx):
        await asyncio.sleep(delay)
        return value

    return pred


def resolve(pred, ctx=None, service=None):
    return asyncio.run(evaluate_predicate(pred, ctx or make_ctx(), service))


# =============================================================================
# is_provider
# =============================================================================


class TestIsProvider:
    def test_exact_match(self):
        assert is_provider("rest")(make_ctx("rest")) is True
        assert is_provider("rest")(make_ctx("socketio")) is False

    def test_server_matches_missing_provider(self):
        assert is_provider("server")(make_ctx()) is True
        assert is_provider("server")(make_ctx("")) is True
        assert is_provider("server")(make_ctx("rest")) is False

    def test_external_matches_any_provider(self):
        assert is_provider("external")(make_ctx("rest")) is True
        assert is_provider("external")(make_ctx("primus")) is True
        assert is_provider("external")(make_ctx()) is False

    def test_several_providers(self):
        pred = is_provider("rest", "server")
        assert pred(make_ctx("rest")) is True
        assert pred(make_ctx()) is True
        assert pred(make_ctx("socketio")) is False

    def test_is_synchronous(self):
        result = is_provider("rest")(make_ctx("rest"))
        assert not inspect.isawaitable(result)

    def test_requires_a_provider(self):
        with pytest.raises(MethodNotAllowed, match="is_provider"):
            is_provider()

    def test_name(self):
        assert repr(is_provider("rest", "socketio")) == "is_provider('rest', 'socketio')"


# =============================================================================
# is_not
# =============================================================================


class TestIsNot:
    def test_negates_sync_predicate_synchronously(self):
        for value in (True, False, 1, 0, "x", ""):
            result = is_not(returns(value))(make_ctx())
            assert not inspect.isawaitable(result)
            assert result is (not value)

    def test_negates_async_predicate_asynchronously(self):
        negated = is_not(returns(True, delay=0))
        result = negated(make_ctx())
        assert inspect.isawaitable(result)
        assert asyncio.run(result) is False

        assert resolve(is_not(returns(0, delay=0))) is True

    def test_negates_provider(self):
        not_rest = is_not(is_provider("rest"))
        assert not_rest(make_ctx("rest")) is False
        assert not_rest(make_ctx("socketio")) is True

    def test_double_negation(self):
        pred = is_not(is_not(returns(True)))
        assert pred(make_ctx()) is True

    def test_forwards_service(self):
        pred = is_not(lambda ctx, service: service == "allowed")
        assert pred(make_ctx(), "allowed") is False
        assert pred(make_ctx(), "denied") is True

    def test_rejects_non_callable(self):
        with pytest.raises(MethodNotAllowed, match="Expected function as param"):
            is_not(True)

    def test_error_propagates(self):
        def bad(ctx):
            raise ValueError("bad predicate")

        with pytest.raises(ValueError, match="bad predicate"):
            is_not(bad)(make_ctx())


# =============================================================================
# some / every
# =============================================================================


class TestSomeEvery:
    CASES = [
        ((True, True), True, True),
        ((True, False), True, False),
        ((False, True), True, False),
        ((False, False), False, False),
        ((False, False, True), True, False),
    ]

    @pytest.mark.parametrize("values,any_expected,all_expected", CASES)
    def test_truth_table(self, values, any_expected, all_expected):
        preds = [returns(v) for v in values]
        assert resolve(some(*preds)) is any_expected
        assert resolve(every(*preds)) is all_expected

    @pytest.mark.parametrize("values,any_expected,all_expected", CASES)
    def test_truth_table_mixed_sync_async(self, values, any_expected, all_expected):
        preds = [
            returns(v, delay=0.001 * i) if i % 2 else returns(v)
            for i, v in enumerate(values)
        ]
        assert resolve(some(*preds)) is any_expected
        assert resolve(every(*preds)) is all_expected

    def test_empty(self):
        assert resolve(some()) is False
        assert resolve(every()) is True

    def test_literals_are_accepted(self):
        assert resolve(some(False, True)) is True
        assert resolve(every(True, 1, "yes")) is True
        assert resolve(every(True, None)) is False

    def test_latency_order_does_not_matter(self):
        preds = [returns(False, delay=0.03), returns(True, delay=0.0), returns(False, delay=0.01)]
        assert resolve(some(*preds)) is True
        assert resolve(every(*preds)) is False
        assert resolve(some(*reversed(preds))) is True

    def test_predicates_run_concurrently(self):
        async def main():
            started = asyncio.Event()

            async def waits(ctx):
                await started.wait()
                return True

            async def signals(ctx):
                started.set()
                return True

            return await asyncio.wait_for(every(waits, signals)(make_ctx()), 1.0)

        assert asyncio.run(main()) is True

    def test_forwards_context_and_service(self):
        seen = []

        def pred(ctx, service):
            seen.append((ctx.method, service))
            return True

        async def async_pred(ctx, service):
            seen.append((ctx.method, service))
            return True

        resolve(every(pred, async_pred), service="svc")
        assert seen == [("find", "svc"), ("find", "svc")]

    def test_first_failure_propagates(self):
        async def fails_late(ctx):
            await asyncio.sleep(0.02)
            raise KeyError("late")

        async def fails_early(ctx):
            raise LookupError("early")

        with pytest.raises(LookupError, match="early"):
            resolve(some(fails_late, fails_early))

    def test_failure_propagates_even_if_result_is_decided(self):
        def fails(ctx):
            raise ValueError("boom")

        with pytest.raises(ValueError):
            resolve(some(True, fails))
        with pytest.raises(ValueError):
            resolve(every(False, fails))

    def test_pending_predicates_are_cancelled_on_failure(self):
        cancelled = []

        async def slow(ctx):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return True

        async def fails(ctx):
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        async def main():
            with pytest.raises(RuntimeError, match="boom"):
                await every(slow, fails)(make_ctx())
            await asyncio.sleep(0.01)

        asyncio.run(main())
        assert cancelled == [True]

    def test_nested_aggregates(self):
        pred = every(some(False, returns(True, delay=0)), is_not(returns(False)))
        assert resolve(pred) is True

    def test_names(self):
        assert repr(some(is_provider("rest"), True)) == "SOME(is_provider('rest'), True)"
        assert repr(every()) == "EVERY()"


# =============================================================================
# Predicate objects and operators
# =============================================================================


class TestPredicateOperators:
    def test_decorator(self):
        @predicate
        def is_find(ctx):
            return ctx.method == "find"

        assert isinstance(is_find, Predicate)
        assert is_find.name == "is_find"
        assert is_find(make_ctx()) is True

    def test_and_or_invert(self):
        yes = Predicate(returns(True), "yes")
        no = Predicate(returns(False), "no")

        assert resolve(yes & yes) is True
        assert resolve(yes & no) is False
        assert resolve(yes | no) is True
        assert resolve(no | no) is False
        assert (~no)(make_ctx()) is True
        assert isinstance(yes & no, PredicateCombinator)

    def test_operators_on_builtin_predicates(self):
        pred = is_provider("rest") | is_provider("socketio")
        assert resolve(pred, make_ctx("socketio")) is True
        assert resolve(pred, make_ctx()) is False
        assert resolve(~is_provider("server"), make_ctx("rest")) is True

    def test_async_predicate_with_service(self):
        @predicate
        async def allowed(ctx, service):
            return service["allow"]

        assert resolve(allowed, service={"allow": True}) is True
        assert resolve(~allowed, service={"allow": True}) is False

    def test_rejects_non_callable(self):
        with pytest.raises(MethodNotAllowed):
            Predicate(42)


class TestEvaluatePredicate:
    def test_plain_values(self):
        assert resolve(True) is True
        assert resolve(0) is False
        assert resolve([1]) is True

    def test_functions(self):
        assert resolve(lambda ctx: ctx.method == "find") is True
        assert resolve(returns(False, delay=0)) is False
        assert resolve(lambda ctx, svc: svc, service="truthy") is True

    def test_condition_unwraps_nested(self):
        inner = Condition(returns(True))
        outer = Condition(inner)
        assert outer.raw is inner.raw
        assert asyncio.run(outer.resolve(make_ctx())) is True
