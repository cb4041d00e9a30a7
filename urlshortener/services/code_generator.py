"""
Short Code Generator

Generates random short codes and checks them against storage in batches.

Design Decisions:
- Scale-adaptive length: the number of existing links picks the code
  length from an ordered list of (threshold, length) tiers, so the code
  space grows before collisions become likely
- Batched collision check: each attempt draws a batch of candidates and
  asks storage which of them exist in a single query
- Bounded retries: after max_retries fully-colliding batches the generator
  returns one code two characters longer WITHOUT checking it. The residual
  collision risk at that tier is accepted; the unique index on short_code
  still rejects an actual duplicate at insert time
- Random source: a plain (non-cryptographic) random.Random, uniform over
  the alphabet; codes only need to be unpredictable enough to avoid
  trivial enumeration, not secret
"""

import logging
import random
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from urlshortener.core.setting import BASE62_ALPHABET

logger = logging.getLogger(__name__)

FALLBACK_LENGTH_INCREMENT = 2


class CodeExistenceChecker(Protocol):
    async def codes_existing(self, candidate_codes: Iterable[str]) -> Set[str]:
        ...


class CodeLengthPolicy:
    """
    Maps the current link count to a code length.

    Tiers are evaluated top-down: the first tier whose threshold is greater
    than the count wins; counts past every threshold get `max_length`.

    Example (defaults):
        CodeLengthPolicy([(100_000, 6), (1_000_000, 7), (10_000_000, 8)], 9)
        length_for(50_000) -> 6, length_for(500_000) -> 7
    """

    def __init__(self, tiers: Sequence[Tuple[int, int]], max_length: int):
        self.tiers: List[Tuple[int, int]] = list(tiers)
        self.max_length = max_length
        self._validate()

    def _validate(self) -> None:
        thresholds = [threshold for threshold, _ in self.tiers]
        lengths = [length for _, length in self.tiers] + [self.max_length]

        if any(length < 1 for length in lengths):
            raise ValueError("Code lengths must be positive")
        if any(later <= earlier for earlier, later in zip(thresholds, thresholds[1:])):
            raise ValueError(f"Scale thresholds must be strictly ascending: {thresholds}")
        if any(later < earlier for earlier, later in zip(lengths, lengths[1:])):
            raise ValueError(f"Code lengths must not decrease as the link count grows: {lengths}")

    @classmethod
    def from_settings(cls, settings) -> "CodeLengthPolicy":
        if not settings.LINK_SCALE_THRESHOLDS:
            return cls([], settings.LINK_DEFAULT_CODE_LENGTH)
        tiers = list(zip(settings.LINK_SCALE_THRESHOLDS, settings.LINK_SCALE_CODE_LENGTHS))
        return cls(tiers, settings.LINK_MAX_SCALE_CODE_LENGTH)

    def length_for(self, existing_count: int) -> int:
        for threshold, length in self.tiers:
            if existing_count < threshold:
                return length
        return self.max_length


class ShortCodeGenerator:
    """
    Collision-avoiding short code generator.

    Args:
        store: anything exposing `codes_existing(codes) -> set` (the LinkStore)
        length_policy: maps the link count to a code length
        alphabet: characters codes are drawn from
        batch_size: candidates generated and checked per attempt
        max_retries: attempts before falling back to a longer, unchecked code
        rng: random source (injectable for deterministic tests)
    """

    def __init__(
        self,
        store: CodeExistenceChecker,
        length_policy: CodeLengthPolicy,
        alphabet: str = BASE62_ALPHABET,
        batch_size: int = 10,
        max_retries: int = 5,
        rng: Optional[random.Random] = None
    ):
        if len(alphabet) < 2:
            raise ValueError("Alphabet needs at least two characters")
        self.store = store
        self.length_policy = length_policy
        self.alphabet = alphabet
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.rng = rng or random.Random()

    def calculate_code_length(self, existing_count: int) -> int:
        return self.length_policy.length_for(existing_count)

    def generate_code(self, length: int) -> str:
        return "".join(self.rng.choices(self.alphabet, k=length))

    def generate_batch(self, length: int) -> List[str]:
        return [self.generate_code(length) for _ in range(self.batch_size)]

    async def generate_unique_code(self, existing_count: int) -> str:
        """
        Return a code that no stored link holds (except at the fallback tier).

        Args:
            existing_count: current number of stored links (the scale signal)

        Raises:
            DatabaseError: if the membership query fails
        """
        length = self.calculate_code_length(existing_count)

        for attempt in range(1, self.max_retries + 1):
            candidates = self.generate_batch(length)
            existing = await self.store.codes_existing(candidates)

            for code in candidates:
                if code not in existing:
                    return code

            logger.debug(
                f"All {len(candidates)} candidates of length {length} collided "
                f"(attempt {attempt}/{self.max_retries})"
            )

        fallback_length = length + FALLBACK_LENGTH_INCREMENT
        logger.warning(
            f"Short code generation exhausted {self.max_retries} batches at length {length}; "
            f"falling back to an unchecked code of length {fallback_length}"
        )
        return self.generate_code(fallback_length)
