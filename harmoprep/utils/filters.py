"""Selection helpers behind the ``--filter-*`` and ``--scanner`` options."""

from __future__ import annotations

from typing import Iterable, List

import click

from harmoprep.models import Session


def split_commas(_ctx, _param, values: tuple[str, ...]) -> tuple[str, ...]:
    """Click callback: flatten ``-o a,b -o c`` into ``("a", "b", "c")``.

    Blank tokens are dropped and duplicates keep their first position.
    """
    tokens = (tok.strip() for value in values for tok in value.split(","))
    return tuple(dict.fromkeys(tok for tok in tokens if tok))


def scanner_codes(ctx, param, values: tuple[str, ...]) -> tuple[str, ...]:
    """Click callback: comma list of single-character scanner codes, upper-cased."""
    codes = tuple(c.upper() for c in split_commas(ctx, param, values))
    bad = [c for c in codes if len(c) != 1]
    if bad:
        raise click.BadParameter(f"scanner codes are single characters, got {', '.join(bad)}")
    return codes


def select_scanners(sessions: Iterable[Session], codes: Iterable[str]) -> List[Session]:
    """Keep the sessions whose scanner code is in *codes* (all when empty)."""
    wanted = {c.upper() for c in codes}
    if not wanted:
        return list(sessions)
    return [s for s in sessions if s.scanner_code.upper() in wanted]
