"""Identity resolution: probe template -> enrolled identity id."""

import logging
import math
from typing import Sequence

from backend.errors import NoMatch
from backend.matcher import Matcher
from backend.models import Match
from backend.validators import require_template
from database.base import IdentityStore

logger = logging.getLogger(__name__)


def pick_best(matches: Sequence[Match]) -> Match | None:
    """Highest score wins; equal top scores go to the lowest identity id.

    Non-finite scores are ignored.
    """
    scored = [m for m in matches if math.isfinite(m.score)]
    if not scored:
        return None
    return min(scored, key=lambda m: (-m.score, m.identity_id))


class IdentityResolver:
    def __init__(
        self,
        identities: IdentityStore,
        matcher: Matcher,
        *,
        min_template_length: int,
        acceptance_threshold: float,
        shortlist_by_length: bool = True,
    ):
        if min_template_length < 1:
            raise ValueError("min_template_length must be at least 1")
        self._identities = identities
        self._matcher = matcher
        self.min_template_length = int(min_template_length)
        self.acceptance_threshold = float(acceptance_threshold)
        self.shortlist_by_length = shortlist_by_length

    def resolve(self, probe_template) -> str:
        """
        Returns the id of the matching identity.

        Raises:
          MalformedInput: probe is not a numeric template of the minimum length.
            The matcher is not called.
          NoMatch: nothing matched, or the best score is under the threshold.
            Both cases look the same to the caller.
          StoreUnavailable: the identity store failed.
        """
        probe = require_template(
            probe_template,
            "template",
            min_length=self.min_template_length,
        )

        if self.shortlist_by_length:
            candidates = self._identities.shortlist(len(probe))
        else:
            candidates = self._identities.all_identities()

        if not candidates:
            logger.info("Resolution miss: no candidates for a %d-feature probe", len(probe))
            raise NoMatch()

        best = pick_best(self._matcher.score(probe, candidates))
        if best is None:
            logger.info("Resolution miss: matcher returned no match over %d candidates", len(candidates))
            raise NoMatch()

        if not best.score >= self.acceptance_threshold:
            # score stays in the server log only
            logger.info(
                "Resolution miss: best score %.4f below threshold %.4f",
                best.score,
                self.acceptance_threshold,
            )
            raise NoMatch()

        logger.debug("Resolved probe to identity %s (score %.4f)", best.identity_id, best.score)
        return best.identity_id
