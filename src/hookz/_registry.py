"""Registry of named hooks/predicates and the hook expression parser."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from hookz._core import Hook, Step, as_step, combine, iff_else, unless
from hookz._predicates import Predicate, every, is_not, is_provider, some
from hookz._soft_delete import soft_delete

logger = logging.getLogger(__name__)


class ExpressionParser:
    """
    Parser for human-readable hook expressions.

    Steps:
        hook_name                    - Registered hook
        hook_factory(arg, ...)       - Hook built by a registered factory
        a >> b >> c                  - Run in order
        ( chain )                    - Grouping

    Conditionals (branches extend as far right as possible; a dangling
    ELSE binds to the innermost IF):
        IF cond THEN chain
        IF cond THEN chain ELSE chain
        WHEN cond THEN chain         - Same as IF
        UNLESS cond THEN chain       - Runs chain when cond is falsy

    Conditions (by precedence, lowest to highest):
        |, OR       - some()
        &, AND      - every()
        ~, NOT, !   - is_not()

    Condition operands:
        predicate_name
        predicate_factory(arg, ...)
        true / false
        ( cond )

    Arguments are numbers, quoted strings, true/false or bare words
    (treated as strings). Newlines are ignored; # starts a comment.

    Examples:
        IF provider(external) THEN remove_password
        IF provider("rest") & ~is_admin THEN strip_secrets >> audit ELSE audit
        UNLESS provider(server) THEN soft_delete("archived")
        set_timestamps >> (IF is_create THEN assign_owner) >> audit
    """

    # Token types
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    SEQ = "SEQ"  # >>
    IF = "IF"
    UNLESS = "UNLESS"
    THEN = "THEN"
    ELSE = "ELSE"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMMA = "COMMA"
    IDENT = "IDENT"
    NUMBER = "NUMBER"
    STRING = "STRING"
    BOOL = "BOOL"
    EOF = "EOF"

    KEYWORDS = {
        "AND": AND,
        "OR": OR,
        "NOT": NOT,
        "IF": IF,
        "WHEN": IF,
        "UNLESS": UNLESS,
        "THEN": THEN,
        "ELSE": ELSE,
    }

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.tokens: list[tuple[str, Any]] = []
        self.token_pos = 0
        self._tokenize()

    def _tokenize(self) -> None:
        """Convert text into tokens."""
        while self.pos < len(self.text):
            ch = self.text[self.pos]

            if ch in " \t\n\r":
                self.pos += 1
                continue

            if ch == "#":
                while self.pos < len(self.text) and self.text[self.pos] != "\n":
                    self.pos += 1
                continue

            if ch == "&":
                self.tokens.append((self.AND, "&"))
                self.pos += 1
            elif ch == "|":
                self.tokens.append((self.OR, "|"))
                self.pos += 1
            elif ch == ">" and self.text[self.pos + 1 : self.pos + 2] == ">":
                self.tokens.append((self.SEQ, ">>"))
                self.pos += 2
            elif ch in "~!":
                self.tokens.append((self.NOT, ch))
                self.pos += 1
            elif ch == "(":
                self.tokens.append((self.LPAREN, "("))
                self.pos += 1
            elif ch == ")":
                self.tokens.append((self.RPAREN, ")"))
                self.pos += 1
            elif ch == ",":
                self.tokens.append((self.COMMA, ","))
                self.pos += 1
            elif ch in "\"'":
                self.tokens.append((self.STRING, self._read_string(ch)))
            elif ch.isdigit() or (
                ch == "-" and self.text[self.pos + 1 : self.pos + 2].isdigit()
            ):
                self.tokens.append((self.NUMBER, self._read_number()))
            elif ch.isalpha() or ch == "_":
                ident = self._read_ident()
                upper = ident.upper()
                if upper in self.KEYWORDS:
                    self.tokens.append((self.KEYWORDS[upper], ident))
                elif ident.lower() in ("true", "false"):
                    self.tokens.append((self.BOOL, ident.lower() == "true"))
                else:
                    self.tokens.append((self.IDENT, ident))
            else:
                raise ValueError(f"Unexpected character: {ch!r} at position {self.pos}")

        self.tokens.append((self.EOF, None))

    def _read_string(self, quote: str) -> str:
        """Read a quoted string with escape sequence processing."""
        self.pos += 1
        result = []
        escape_map = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\"}
        while self.pos < len(self.text) and self.text[self.pos] != quote:
            if self.text[self.pos] == "\\" and self.pos + 1 < len(self.text):
                next_ch = self.text[self.pos + 1]
                result.append(escape_map.get(next_ch, next_ch))
                self.pos += 2
            else:
                result.append(self.text[self.pos])
                self.pos += 1
        if self.pos >= len(self.text):
            raise ValueError("Unterminated string literal")
        self.pos += 1
        return "".join(result)

    def _read_number(self) -> int | float:
        start = self.pos
        if self.text[self.pos] == "-":
            self.pos += 1
        while self.pos < len(self.text) and (
            self.text[self.pos].isdigit() or self.text[self.pos] == "."
        ):
            self.pos += 1
        text = self.text[start : self.pos]
        return float(text) if "." in text else int(text)

    def _read_ident(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and (
            self.text[self.pos].isalnum() or self.text[self.pos] == "_"
        ):
            self.pos += 1
        return self.text[start : self.pos]

    def _peek(self) -> tuple[str, Any]:
        return self.tokens[self.token_pos]

    def _consume(self) -> tuple[str, Any]:
        token = self.tokens[self.token_pos]
        self.token_pos += 1
        return token

    def _expect(self, token_type: str) -> tuple[str, Any]:
        token = self._consume()
        if token[0] != token_type:
            raise ValueError(f"Expected {token_type}, got {token[0]}")
        return token

    def parse(self) -> dict | str:
        """
        Parse expression and return config dict.

        Grammar:
            chain      = step ('>>' step)*
            step       = cond_step | call | '(' chain ')'
            cond_step  = ('IF' | 'WHEN' | 'UNLESS') or_cond 'THEN' chain ('ELSE' chain)?
            or_cond    = and_cond (('|' | 'OR') and_cond)*
            and_cond   = not_cond (('&' | 'AND') not_cond)*
            not_cond   = ('~' | 'NOT' | '!') not_cond | cond_atom
            cond_atom  = BOOL | call | '(' or_cond ')'
            call       = IDENT ('(' arg_list? ')')?
            arg        = NUMBER | STRING | IDENT | BOOL

        Config nodes:
            "name" | {"name": [args]}
            {"combine": [...]}
            {"iff": {"cond": ..., "then": ..., "else": ... or None}}
            {"unless": {"cond": ..., "then": ..., "else": ... or None}}
            {"some": [...]} | {"every": [...]} | {"not": ...} | True | False
        """
        if self._peek()[0] == self.EOF:
            raise ValueError("Empty hook expression")
        result = self._parse_chain()
        if self._peek()[0] != self.EOF:
            raise ValueError(f"Unexpected token: {self._peek()}")
        return result

    def _parse_chain(self) -> dict | str:
        items = [self._parse_step()]
        while self._peek()[0] == self.SEQ:
            self._consume()
            items.append(self._parse_step())
        if len(items) == 1:
            return items[0]
        return {"combine": items}

    def _parse_step(self) -> dict | str:
        token = self._peek()

        if token[0] in (self.IF, self.UNLESS):
            self._consume()
            condition = self._parse_or()
            self._expect(self.THEN)
            then_branch = self._parse_chain()
            else_branch = None
            if self._peek()[0] == self.ELSE:
                self._consume()
                else_branch = self._parse_chain()
            kind = "iff" if token[0] == self.IF else "unless"
            return {kind: {"cond": condition, "then": then_branch, "else": else_branch}}

        if token[0] == self.LPAREN:
            self._consume()
            chain = self._parse_chain()
            self._expect(self.RPAREN)
            return chain

        if token[0] == self.IDENT:
            return self._parse_call()

        raise ValueError(f"Unexpected token: {token}")

    def _parse_or(self) -> Any:
        items = [self._parse_and()]
        while self._peek()[0] == self.OR:
            self._consume()
            items.append(self._parse_and())
        if len(items) == 1:
            return items[0]
        return {"some": items}

    def _parse_and(self) -> Any:
        items = [self._parse_not()]
        while self._peek()[0] == self.AND:
            self._consume()
            items.append(self._parse_not())
        if len(items) == 1:
            return items[0]
        return {"every": items}

    def _parse_not(self) -> Any:
        if self._peek()[0] == self.NOT:
            self._consume()
            return {"not": self._parse_not()}
        return self._parse_cond_atom()

    def _parse_cond_atom(self) -> Any:
        token = self._peek()

        if token[0] == self.BOOL:
            return self._consume()[1]

        if token[0] == self.LPAREN:
            self._consume()
            cond = self._parse_or()
            self._expect(self.RPAREN)
            return cond

        if token[0] == self.IDENT:
            return self._parse_call()

        raise ValueError(f"Unexpected token in condition: {token}")

    def _parse_call(self) -> dict | str:
        name = self._expect(self.IDENT)[1]
        if self._peek()[0] == self.LPAREN:
            self._consume()
            args = self._parse_args()
            self._expect(self.RPAREN)
            return {name: args}
        return name

    def _parse_args(self) -> list:
        args: list[Any] = []

        if self._peek()[0] == self.RPAREN:
            return args

        args.append(self._parse_arg())
        while self._peek()[0] == self.COMMA:
            self._consume()
            args.append(self._parse_arg())

        return args

    def _parse_arg(self) -> Any:
        token = self._peek()
        if token[0] in (self.NUMBER, self.STRING, self.BOOL, self.IDENT):
            return self._consume()[1]
        raise ValueError(f"Invalid argument: {token}")


def parse_expression(text: str) -> dict | str:
    """
    Parse a hook expression into a config structure.

    Example:
        >>> parse_expression("IF provider(rest) THEN a >> b")
        {'iff': {'cond': {'provider': ['rest']}, 'then': {'combine': ['a', 'b']}, 'else': None}}
    """
    return ExpressionParser(text).parse()


class Registry:
    """
    Registry for named hooks and predicates.

    Builds step trees from hook expressions, so hook chains can live in
    configuration instead of code.

    Built in:
        provider(name, ...)   - is_provider()
        soft_delete()         - soft_delete() on the "deleted" field
        soft_delete(field)    - soft_delete(field)

    Factories are always called with parentheses: a bare factory name
    raises ValueError.

    Example:
        reg = Registry()

        @reg.hook
        def strip_password(ctx):
            ctx.result.pop("password", None)

        @reg.predicate
        def is_admin(ctx):
            return ctx.params.get("user", {}).get("admin", False)

        @reg.hook_factory
        def set_field(name, value):
            def set_field_hook(ctx):
                ctx.data[name] = value
            return set_field_hook

        after_get = reg.load("UNLESS is_admin | provider(server) THEN strip_password")
        ctx = await after_get.run(ctx, service)
    """

    def __init__(self, builtins: bool = True) -> None:
        self._hooks: dict[str, Step[Any]] = {}
        self._hook_factories: dict[str, Callable[..., Any]] = {}
        self._predicates: dict[str, Any] = {}
        self._predicate_factories: dict[str, Callable[..., Any]] = {}
        if builtins:
            self._predicate_factories["provider"] = is_provider
            self._hook_factories["soft_delete"] = soft_delete

    def hook(self, fn: Callable[..., Any]) -> Hook[Any]:
        """Decorator to register a hook function under its name."""
        step: Hook[Any] = Hook(fn, fn.__name__)
        self._hooks[fn.__name__] = step
        return step

    def hook_factory(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator to register a function returning a hook when called with arguments."""
        self._hook_factories[fn.__name__] = fn
        return fn

    def predicate(self, fn: Callable[..., Any]) -> Predicate:
        """Decorator to register a predicate function under its name."""
        pred = Predicate(fn, fn.__name__)
        self._predicates[fn.__name__] = pred
        return pred

    def predicate_factory(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator to register a function returning a predicate when called with arguments."""
        self._predicate_factories[fn.__name__] = fn
        return fn

    def load(self, expr: str) -> Step[Any]:
        """
        Build a step tree from a hook expression.

        See ExpressionParser for the syntax.

        Raises:
            ValueError: syntax error or unknown name
        """
        step = self._build_step(parse_expression(expr))
        logger.debug("Loaded hook expression %r as %r", expr, step)
        return step

    def load_file(self, path: str) -> Step[Any]:
        """Build a step tree from a file holding a hook expression."""
        return self.load(Path(path).read_text())

    def _build_step(self, node: dict | str) -> Step[Any]:
        if isinstance(node, str):
            return as_step(
                self._resolve(node, None, self._hooks, self._hook_factories, "Hook")
            )

        if not isinstance(node, dict) or len(node) != 1:
            raise ValueError(f"Invalid config node: {node}")

        key, value = next(iter(node.items()))

        if key == "combine":
            return combine(*(self._build_step(item) for item in value))

        if key in ("iff", "unless"):
            condition = self._build_condition(value["cond"])
            then_branch = self._build_step(value["then"])
            conditional = (
                iff_else(condition, then_branch)
                if key == "iff"
                else unless(condition, then_branch)
            )
            if value.get("else") is not None:
                conditional = conditional.else_(self._build_step(value["else"]))
            return conditional

        return as_step(
            self._resolve(key, value, self._hooks, self._hook_factories, "Hook")
        )

    def _build_condition(self, node: Any) -> Any:
        if isinstance(node, bool):
            return node

        if isinstance(node, str):
            return self._resolve(
                node, None, self._predicates, self._predicate_factories, "Predicate"
            )

        if not isinstance(node, dict) or len(node) != 1:
            raise ValueError(f"Invalid condition node: {node}")

        key, value = next(iter(node.items()))

        if key == "some":
            return some(*(self._build_condition(item) for item in value))
        if key == "every":
            return every(*(self._build_condition(item) for item in value))
        if key == "not":
            inner = self._build_condition(value)
            return not inner if isinstance(inner, bool) else is_not(inner)

        return self._resolve(
            key, value, self._predicates, self._predicate_factories, "Predicate"
        )

    def _resolve(
        self,
        name: str,
        args: list[Any] | None,
        plain: dict[str, Any],
        factories: dict[str, Callable[..., Any]],
        kind: str,
    ) -> Any:
        """Resolve a name to a registered object, calling factories with args."""
        if name in plain:
            if args is not None:
                raise ValueError(f"{kind} '{name}' does not take arguments")
            return plain[name]

        if name in factories:
            if args is None:
                raise ValueError(f"{kind} '{name}' requires arguments")
            return factories[name](*args)

        raise ValueError(f"Unknown {kind.lower()}: '{name}'")
