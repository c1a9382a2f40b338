"""
Block Tree Rules
================

Constants and pure functions that decide where a block may sit in the tree.

Heights
-------
The genesis block has height 1 and every other block sits one above its
parent, so height is a function of ancestry depth alone.

Cut-off age
-----------
A block is admitted only if its height is greater than
``tip_height - CUT_OFF_AGE``. This bounds how far behind the best known tip
a branch may still grow, and with it the depth of any reorganization.
Concretely, with ``CUT_OFF_AGE = 10`` a block at height 2 (on top of
genesis) is admissible while the tip height is at most 11; once the tip
reaches height 12 it is not.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CUT_OFF_AGE = 10
"""Maximum number of blocks a new block may lag behind the current tip and
still be admissible."""

GENESIS_HEIGHT = 1
"""Height of the genesis block."""


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def child_height(parent_height: int) -> int:
    """Height of a block built directly on a block at *parent_height*."""
    return parent_height + 1


def is_within_cut_off(candidate_height: int, tip_height: int, cut_off_age: int = CUT_OFF_AGE) -> bool:
    """
    Check the cut-off rule for a candidate block.

    Args:
        candidate_height: Height the new block would have.
        tip_height: Height of the current tip.
        cut_off_age: Allowed lag behind the tip.

    Returns:
        True if ``candidate_height > tip_height - cut_off_age``.
    """
    return candidate_height > tip_height - cut_off_age


def can_be_extended(height: int, tip_height: int, cut_off_age: int = CUT_OFF_AGE) -> bool:
    """
    Whether a node at *height* may still receive children.

    Tip heights only grow, so once this is False for a node it stays False.
    """
    return is_within_cut_off(child_height(height), tip_height, cut_off_age)
