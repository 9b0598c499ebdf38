"""Textual difference between two formatted snapshots."""

from __future__ import annotations

from difflib import SequenceMatcher

# Max chars of a replaced line range compared character by character
MAX_REPLACE_LENGTH = 2_000


def difference_percent(before: str, after: str) -> int:
    """Percentage of the longer text not covered by common subsequences.

    Lines are matched first; a replaced range of lines is then compared
    character by character when both sides are short enough, otherwise it
    counts as entirely different. Returns 0 for identical texts (including
    two empty ones) and 100 when nothing matches.
    """
    longest = max(len(before), len(after))
    if longest == 0:
        return 0
    before_lines = before.splitlines(keepends=True)
    after_lines = after.splitlines(keepends=True)
    matcher = SequenceMatcher(None, before_lines, after_lines)

    common = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            common += sum(len(line) for line in before_lines[i1:i2])
        elif tag == "replace":
            old = "".join(before_lines[i1:i2])
            new = "".join(after_lines[j1:j2])
            if len(old) <= MAX_REPLACE_LENGTH and len(new) <= MAX_REPLACE_LENGTH:
                chars = SequenceMatcher(None, old, new, autojunk=False)
                common += sum(block.size for block in chars.get_matching_blocks())
    return int((1 - common / longest) * 100)
