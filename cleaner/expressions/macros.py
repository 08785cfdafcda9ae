"""Compile-time macros for condition expressions.

``target.sortBy(v, keyExpr[, order])`` cannot be a plain function: the key
expression has to be evaluated once per element with ``v`` bound to that
element, and the only construct able to do that is the language's own
comprehension. The macro therefore rewrites the parsed expression tree,
before evaluation, into::

    sort(target.map(v, pair(keyExpr, v)), order)

where ``order`` defaults to ``"asc"``. The replacement nodes come from
parsing a template and splicing the caller's sub-trees into it, so they
always have the shape the parser itself produces.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from lark import Token, Tree

logger = logging.getLogger(__name__)

SORT_BY = "sortBy"

_TARGET_PLACEHOLDER = "__sortby_target__"
_KEY_PLACEHOLDER = "__sortby_key__"

Parser = Callable[[str], Tree]


class MacroError(Exception):
    """A macro call cannot be expanded (bad arguments)."""


def expand_macros(tree: Tree, parse: Parser) -> Tree:
    """Expand every macro call in a parsed expression, in place.

    Expansion is bottom-up, so macro calls nested in a target or key
    expression are expanded before the call that contains them.

    Args:
        tree: Parsed expression tree
        parse: Parser used to build replacement nodes (no macro expansion)

    Returns:
        The same tree, rewritten

    Raises:
        MacroError: If a macro call has invalid arguments
    """
    _rewrite(tree, parse)
    return tree


def _rewrite(node: Tree, parse: Parser) -> None:
    for index, child in enumerate(node.children):
        if not isinstance(child, Tree):
            continue
        _rewrite(child, parse)
        if child.data == "member_dot_arg" and _call_name(child) == SORT_BY:
            node.children[index] = _expand_sort_by(child, parse)


def _call_name(node: Tree) -> Optional[str]:
    for child in node.children:
        if isinstance(child, Token):
            return str(child)
    return None


def _call_parts(node: Tree) -> Tuple[Tree, List[Tree]]:
    """Split a receiver call into its receiver and argument trees."""
    trees = [child for child in node.children if isinstance(child, Tree)]
    receiver = trees[0]
    args: List[Tree] = []
    if len(trees) > 1:
        args = [arg for arg in trees[1].children if isinstance(arg, Tree)]
    return receiver, args


def identifier_of(node: Tree) -> Optional[str]:
    """Return the identifier if the expression is a bare identifier.

    Walks down the single-child chain the parser builds around a primary
    expression; anything with a second child (field selection, operators,
    calls) is not a plain identifier.
    """
    current = node
    while isinstance(current, Tree):
        if current.data == "ident":
            token = next((c for c in current.children if isinstance(c, Token)), None)
            return str(token) if token is not None else None
        children = [c for c in current.children if c is not None]
        if len(children) != 1:
            return None
        current = children[0]
    return None


def _find_call(tree: Tree, data: str, name: str) -> Tree:
    for subtree in tree.iter_subtrees():
        if subtree.data == data and _call_name(subtree) == name:
            return subtree
    raise MacroError(f"internal error: {name} call missing from {SORT_BY} template")


def _find_parent(tree: Tree, target: Tree) -> Tree:
    for subtree in tree.iter_subtrees():
        if any(child is target for child in subtree.children):
            return subtree
    raise MacroError(f"internal error: {SORT_BY} template has no enclosing node")


def _arguments(call: Tree) -> Tree:
    return [child for child in call.children if isinstance(child, Tree)][-1]


def _expand_sort_by(node: Tree, parse: Parser) -> Tree:
    receiver, args = _call_parts(node)
    if len(args) not in (2, 3):
        raise MacroError(f"{SORT_BY} expects 2 or 3 arguments, got {len(args)}")

    variable = identifier_of(args[0])
    if variable is None:
        raise MacroError(f"{SORT_BY}: argument is not an identifier")

    template = parse(
        f'sort({_TARGET_PLACEHOLDER}.map({variable}, pair({_KEY_PLACEHOLDER}, {variable})), "asc")'
    )
    sort_call = _find_call(template, "ident_arg", "sort")
    map_call = _find_call(template, "member_dot_arg", "map")
    pair_call = _find_call(template, "ident_arg", "pair")

    # receiver position of .map(...)
    for index, child in enumerate(map_call.children):
        if isinstance(child, Tree):
            map_call.children[index] = receiver
            break

    _arguments(pair_call).children[0] = args[1]
    if len(args) == 3:
        _arguments(sort_call).children[1] = args[2]

    logger.debug(f"Expanded {SORT_BY} over variable '{variable}'")
    return _find_parent(template, sort_call)
