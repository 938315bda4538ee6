"""Text banners used to make the run log easier to scan."""

import logging
from typing import List

logger = logging.getLogger('pgbackup')

RULE_WIDTH = 50


def _box(text: str, edge_char: str) -> List[str]:
    padded = f" {text} "
    edge = edge_char * len(padded)
    return [f"+{edge}+", f"|{padded}|", f"+{edge}+"]


def single_border(text: str) -> List[str]:
    """Box drawn with ``-``, used around database names."""
    return _box(text, '-')


def double_border(text: str) -> List[str]:
    """Box drawn with ``=``, used around the retention tier."""
    return _box(text, '=')


def header(text: str) -> List[str]:
    """Full-width banner with the text centered, used for the run title."""
    inner = RULE_WIDTH - 4
    return [
        '#' * RULE_WIDTH,
        f"##{text.center(inner)}##",
        '#' * RULE_WIDTH,
    ]


def rule(char: str = '=') -> str:
    return char * RULE_WIDTH


def emit(lines, level: int = logging.INFO):
    """Log each line of a banner separately so log prefixes stay aligned."""
    if isinstance(lines, str):
        lines = [lines]
    for line in lines:
        logger.log(level, line)


def format_size(size_bytes: int) -> str:
    """Human-readable file size."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.2f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def format_elapsed(seconds: float) -> str:
    """Elapsed time as ``M min S sec``."""
    total = int(seconds)
    return f"{total // 60} min {total % 60} sec"
