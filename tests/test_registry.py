"""
Tests for the hook Registry and expression parser

Run with: pytest tests/test_registry.py -v
"""

import asyncio

import pytest

from hookz import (
    Hook,
    HookContext,
    NotFound,
    Predicate,
    Registry,
    Step,
    parse_expression,
)

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def reg():
    registry = Registry()

    def record(name):
        def step(ctx):
            ctx.data.setdefault("ran", []).append(name)

        step.__name__ = name
        return step

    for name in ("a", "b", "c", "d"):
        registry.hook(record(name))

    @registry.hook_factory
    def set_field(name, value):
        def set_field_hook(ctx):
            ctx.data[name] = value

        return set_field_hook

    @registry.predicate
    def is_create(ctx):
        return ctx.method == "create"

    @registry.predicate
    async def is_admin(ctx):
        return ctx.params.get("admin", False)

    @registry.predicate_factory
    def has_field(name):
        return lambda ctx: name in (ctx.data or {})

    return registry


def run(step, method="create", service=None, **params):
    ctx = HookContext(method, data={}, params=params)
    return asyncio.run(step.run(ctx, service))


def ran(step, method="create", **params):
    return run(step, method, **params).data.get("ran", [])


# =============================================================================
# Parser
# =============================================================================


class TestParseExpression:
    def test_name(self):
        assert parse_expression("a") == "a"

    def test_call(self):
        assert parse_expression("f(1, -2.5, 'x', \"y\", true, bare)") == {
            "f": [1, -2.5, "x", "y", True, "bare"]
        }
        assert parse_expression("f()") == {"f": []}

    def test_chain(self):
        assert parse_expression("a >> b >> c") == {"combine": ["a", "b", "c"]}

    def test_if_then_else(self):
        assert parse_expression("IF p THEN a ELSE b") == {
            "iff": {"cond": "p", "then": "a", "else": "b"}
        }

    def test_when_and_unless(self):
        assert parse_expression("when p then a") == {
            "iff": {"cond": "p", "then": "a", "else": None}
        }
        assert parse_expression("UNLESS p THEN a") == {
            "unless": {"cond": "p", "then": "a", "else": None}
        }

    def test_branches_extend_right(self):
        assert parse_expression("IF p THEN a >> b ELSE c >> d") == {
            "iff": {
                "cond": "p",
                "then": {"combine": ["a", "b"]},
                "else": {"combine": ["c", "d"]},
            }
        }

    def test_grouping_limits_branch(self):
        assert parse_expression("a >> (IF p THEN b) >> c") == {
            "combine": ["a", {"iff": {"cond": "p", "then": "b", "else": None}}, "c"]
        }

    def test_dangling_else_binds_inner(self):
        assert parse_expression("IF p THEN IF q THEN a ELSE b") == {
            "iff": {
                "cond": "p",
                "then": {"iff": {"cond": "q", "then": "a", "else": "b"}},
                "else": None,
            }
        }

    def test_condition_precedence(self):
        assert parse_expression("IF p | q & ~r THEN a")["iff"]["cond"] == {
            "some": ["p", {"every": ["q", {"not": "r"}]}]
        }
        assert parse_expression("IF (p OR q) AND NOT r THEN a")["iff"]["cond"] == {
            "every": [{"some": ["p", "q"]}, {"not": "r"}]
        }
        assert parse_expression("IF !true THEN a")["iff"]["cond"] == {"not": True}

    def test_comments_and_newlines(self):
        text = """
        # before create
        a >>   # first
        b
        """
        assert parse_expression(text) == {"combine": ["a", "b"]}

    def test_string_escapes(self):
        assert parse_expression(r"f('a\'b\n')") == {"f": ["a'b\n"]}

    @pytest.mark.parametrize(
        "text,message",
        [
            ("", "Empty"),
            ("   # only a comment", "Empty"),
            ("a >>", "Unexpected token"),
            ("a b", "Unexpected token"),
            ("IF p a", "Expected THEN"),
            ("f('abc", "Unterminated"),
            ("a @ b", "Unexpected character"),
            ("(a", "Expected RPAREN"),
            ("f(>>)", "Invalid argument"),
            ("IF >> THEN a", "Unexpected token in condition"),
        ],
    )
    def test_errors(self, text, message):
        with pytest.raises(ValueError, match=message):
            parse_expression(text)


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_decorators(self, reg):
        assert isinstance(reg.hook(lambda ctx: None), Hook)

        @reg.predicate
        def anything(ctx):
            return True

        assert isinstance(anything, Predicate)

    def test_single_hook(self, reg):
        step = reg.load("a")
        assert isinstance(step, Step)
        assert ran(step) == ["a"]

    def test_chain(self, reg):
        assert ran(reg.load("a >> b >> c")) == ["a", "b", "c"]

    def test_hook_factory(self, reg):
        ctx = run(reg.load("set_field(status, 'active') >> set_field('count', 3)"))
        assert ctx.data == {"status": "active", "count": 3}

    def test_if_else(self, reg):
        step = reg.load("IF is_create THEN a >> b ELSE c")
        assert ran(step, "create") == ["a", "b"]
        assert ran(step, "patch") == ["c"]

    def test_async_predicate(self, reg):
        step = reg.load("IF is_admin THEN a ELSE b")
        assert ran(step, admin=True) == ["a"]
        assert ran(step) == ["b"]

    def test_unless(self, reg):
        step = reg.load("UNLESS is_admin THEN a ELSE b")
        assert ran(step) == ["a"]
        assert ran(step, admin=True) == ["b"]

    def test_builtin_provider(self, reg):
        step = reg.load("IF provider(external) THEN a ELSE b")
        assert ran(step, provider="rest") == ["a"]
        assert ran(step) == ["b"]

        step = reg.load("IF provider(rest, socketio) THEN a")
        assert ran(step, provider="socketio") == ["a"]
        assert ran(step, provider="primus") == []

    def test_combined_conditions(self, reg):
        step = reg.load("IF is_create & (is_admin | provider(server)) THEN a ELSE b")
        assert ran(step, "create") == ["a"]
        assert ran(step, "create", provider="rest") == ["b"]
        assert ran(step, "create", provider="rest", admin=True) == ["a"]
        assert ran(step, "patch") == ["b"]

    def test_not(self, reg):
        assert ran(reg.load("IF ~is_create THEN a"), "patch") == ["a"]
        assert ran(reg.load("IF NOT is_admin THEN a")) == ["a"]
        assert ran(reg.load("IF !false THEN a")) == ["a"]

    def test_bool_conditions(self, reg):
        assert ran(reg.load("IF true THEN a ELSE b")) == ["a"]
        assert ran(reg.load("IF false THEN a ELSE b")) == ["b"]

    def test_predicate_factory(self, reg):
        step = reg.load("set_field(x, 1) >> IF has_field(x) THEN a")
        assert ran(step) == ["a"]

    def test_nested_conditionals(self, reg):
        step = reg.load(
            """
            a >> (
                IF provider(server)
                THEN IF is_create THEN b ELSE c
            ) >> d
            """
        )
        assert ran(step, "create") == ["a", "b", "d"]
        assert ran(step, "patch") == ["a", "c", "d"]
        assert ran(step, "patch", provider="rest") == ["a", "d"]

    def test_builtin_soft_delete(self, reg):
        class Items:
            async def get(self, id, params=None):
                return {"id": id, "archived": True}

        step = reg.load("soft_delete('archived')")
        ctx = run(step, "find", service=Items())
        assert ctx.query == {"archived": {"$ne": True}}

        with pytest.raises(NotFound):
            asyncio.run(step.run(HookContext("get", id=1), Items()))

    def test_builtin_soft_delete_default_field(self, reg):
        step = reg.load("soft_delete()")
        ctx = run(step, "find", service=object())
        assert ctx.query == {"deleted": {"$ne": True}}

        with pytest.raises(ValueError, match="Hook 'soft_delete' requires arguments"):
            reg.load("soft_delete")

    def test_without_builtins(self):
        with pytest.raises(ValueError, match="Unknown predicate: 'provider'"):
            Registry(builtins=False).load("IF provider(rest) THEN x")

    def test_unknown_names(self, reg):
        with pytest.raises(ValueError, match="Unknown hook: 'missing'"):
            reg.load("a >> missing")
        with pytest.raises(ValueError, match="Unknown predicate: 'nope'"):
            reg.load("IF nope THEN a")

    def test_argument_mismatch(self, reg):
        with pytest.raises(ValueError, match="does not take arguments"):
            reg.load("a(1)")
        with pytest.raises(ValueError, match="requires arguments"):
            reg.load("set_field")
        with pytest.raises(ValueError, match="does not take arguments"):
            reg.load("IF is_create(1) THEN a")

    def test_load_file(self, reg, tmp_path):
        path = tmp_path / "before_create.hooks"
        path.write_text("# before create\nIF is_create THEN a >> b\n")
        assert ran(reg.load_file(str(path))) == ["a", "b"]

    def test_loaded_tree_is_reusable(self, reg):
        step = reg.load("IF is_create THEN a ELSE b")

        async def main():
            return await asyncio.gather(
                step.run(HookContext("create", data={})),
                step.run(HookContext("remove", data={})),
            )

        first, second = asyncio.run(main())
        assert first.data["ran"] == ["a"]
        assert second.data["ran"] == ["b"]
