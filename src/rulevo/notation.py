"""
Textual notation for rule diagrams.

One node per definition::

    # comments run to the end of the line
    root: player(%0 <- _) { n1 } {}
    n1: move(%1 <- _, %2 <- _) { board(%1, %2, :blank) { win } {} } {}
    win: output next_board(%1, %2, %0)
    hub: * { root } { win }

Terms are ``:name``, ``:123`` or ``:1.5`` (constants), ``"any text"``
(string constant), ``true``/``false`` (boolean constants), ``%N``
(reference) and ``%N <- _`` (free). A free term always binds whatever value
it meets, so the only expression accepted after ``<-`` is ``_``. An arm holds a label,
a nested node, or nothing. The root is the node labelled ``root``, or the
first node when no such label exists.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .builder import DiagramBuilder
from .diagram import Branch, Diagram, Leaf
from .errors import MalformedProgram
from .registry import Predicate, PredicateRegistry
from .terms import Constant, Free, Reference, Term

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<comment>\#[^\n]*)
    | (?P<arrow><-)
    | (?P<string>"(?:[^"\\]|\\.)*")
    | (?P<float>-?\d+(?:\.\d+(?:[eE][-+]?\d+)?|[eE][-+]?\d+))
    | (?P<int>-?\d+)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<punct>[:(){},%*])
    """,
    re.VERBOSE,
)


_BOOLEANS = {"true": True, "false": False}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    line: int
    column: int


def tokenize(text: str) -> List[Token]:
    """Split notation source into tokens, dropping whitespace and comments."""
    tokens: List[Token] = []
    position = 0
    line, line_start = 1, 0
    while position < len(text):
        found = _TOKEN_RE.match(text, position)
        column = position - line_start + 1
        if found is None:
            raise MalformedProgram(f"unexpected character {text[position]!r}", line, column)
        kind = found.lastgroup
        chunk = found.group()
        if kind not in ("ws", "comment"):
            tokens.append(Token(kind, chunk, line, column))
        newlines = chunk.count("\n")
        if newlines:
            line += newlines
            line_start = position + chunk.rindex("\n") + 1
        position = found.end()
    tokens.append(Token("eof", "", line, position - line_start + 1))
    return tokens


class _Parser:
    """Recursive-descent parser feeding a ``DiagramBuilder``."""

    def __init__(self, text: str, registry: PredicateRegistry):
        self.tokens = tokenize(text)
        self.position = 0
        self.registry = registry
        self.builder = DiagramBuilder(registry)
        self.defined: set = set()

    # Token helpers

    def peek(self, offset: int = 0) -> Token:
        index = min(self.position + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def error(self, message: str, token: Optional[Token] = None) -> MalformedProgram:
        token = token or self.peek()
        return MalformedProgram(message, token.line, token.column)

    def at(self, text: str) -> bool:
        token = self.peek()
        return token.kind in ("punct", "arrow") and token.text == text

    def expect(self, text: str) -> Token:
        token = self.peek()
        if not self.at(text):
            found = token.text or "end of input"
            raise self.error(f"expected '{text}', found '{found}'", token)
        self.position += 1
        return token

    def expect_kind(self, kind: str, what: str) -> Token:
        token = self.peek()
        if token.kind != kind:
            found = token.text or "end of input"
            raise self.error(f"expected {what}, found '{found}'", token)
        self.position += 1
        return token

    # Grammar

    def program(self) -> Diagram:
        if self.peek().kind == "eof":
            raise self.error("empty program")
        while self.peek().kind != "eof":
            label = self.expect_kind("ident", "a node label")
            self.expect(":")
            self.define(label)
        return self.builder.build()

    def define(self, label: Token) -> int:
        if label.text in self.defined:
            raise self.error(f"duplicate label '{label.text}'", label)
        self.defined.add(label.text)
        index = self.builder.reserve(label.text)
        self.body(index)
        return index

    def body(self, index: int) -> None:
        if self.at("*"):
            self.position += 1
            match = self.arm()
            refute = self.arm()
            self.builder.passthrough(match=match, refute=refute, at=index)
            return
        token = self.peek()
        if token.kind == "ident" and token.text == "output" and self.peek(1).kind == "ident":
            self.position += 1
            predicate, terms = self.pattern()
            self.builder.leaf(predicate, *terms, at=index)
            return
        predicate, terms = self.pattern()
        match = self.arm()
        refute = self.arm()
        self.builder.branch(predicate, *terms, match=match, refute=refute, at=index)

    def pattern(self) -> Tuple[Predicate, List[Term]]:
        name = self.expect_kind("ident", "a predicate name")
        predicate = self.registry.get(name.text)
        if predicate is None:
            raise self.error(f"unknown predicate '{name.text}'", name)
        self.expect("(")
        terms: List[Term] = []
        if not self.at(")"):
            terms.append(self.term())
            while self.at(","):
                self.position += 1
                terms.append(self.term())
        self.expect(")")
        return predicate, terms

    def term(self) -> Term:
        token = self.peek()
        if token.kind == "string":
            self.position += 1
            return Constant(json.loads(token.text))
        if token.kind == "ident" and token.text in _BOOLEANS:
            self.position += 1
            return Constant(_BOOLEANS[token.text])
        if self.at(":"):
            self.position += 1
            value = self.peek()
            if value.kind == "int":
                self.position += 1
                return Constant(int(value.text))
            if value.kind == "float":
                self.position += 1
                return Constant(float(value.text))
            if value.kind == "ident":
                self.position += 1
                return Constant(value.text)
            raise self.error("expected a constant after ':'", value)
        if self.at("%"):
            self.position += 1
            register = self.expect_kind("int", "a register number")
            if register.text.startswith("-"):
                raise self.error("registers are non-negative", register)
            if self.at("<-"):
                self.position += 1
                hole = self.expect_kind("ident", "'_'")
                if hole.text != "_":
                    raise self.error("expected '_' after '<-'", hole)
                return Free(int(register.text))
            return Reference(int(register.text))
        found = token.text or "end of input"
        raise self.error(f"expected a term, found '{found}'", token)

    def arm(self) -> Optional[object]:
        self.expect("{")
        if self.at("}"):
            self.position += 1
            return None
        token = self.peek()
        following = self.peek(1)
        if token.kind == "ident" and following.kind == "punct" and following.text == "}":
            self.position += 2
            return token.text
        if token.kind == "ident" and following.kind == "punct" and following.text == ":":
            self.position += 2
            target = self.define(token)
        else:
            target = self.builder.reserve()
            self.body(target)
        self.expect("}")
        return target


def parse_diagram(text: str, registry: PredicateRegistry) -> Diagram:
    """
    Parse notation into a validated diagram.

    Raises:
        MalformedProgram: Syntax errors and unknown predicate names
        MalformedDiagram: Well-formedness violations of the parsed diagram
    """
    return _Parser(text, registry).program()


def _label(diagram: Diagram, index: Optional[int]) -> str:
    if index is None:
        return ""
    return "root" if index == diagram.root else f"n{index}"


def format_diagram(diagram: Diagram) -> str:
    """Print one labelled definition per node, in index order."""
    lines = []
    for index, node in enumerate(diagram.nodes):
        label = _label(diagram, index)
        if isinstance(node, Leaf):
            lines.append(f"{label}: output {node.pattern}")
        elif isinstance(node, Branch):
            match = _label(diagram, node.match)
            refute = _label(diagram, node.refute)
            lines.append(f"{label}: {node.pattern} {{{match}}} {{{refute}}}")
    return "\n".join(lines) + "\n"


__all__ = ["Token", "tokenize", "parse_diagram", "format_diagram"]
