"""
Duplicate attendee identities across a series.

Two signals propose that two email addresses belong to the same person:

* ``fingerprint``: one device client id submitted under both emails.
* ``similarity``: the addresses look like typos or aliases of each other
  (edit distance on local part and domain, a long shared local part, or the
  same address under another TLD).

Records are folded into an ``IdentityCorpus`` batch by batch, so memory grows
with the number of distinct emails and devices, not with the record count.
Nothing here writes; suggestions are advisory.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterable, NamedTuple

from attendly.models.attendance import SYNTHETIC_CLIENT_ID_PREFIXES

SIGNAL_FINGERPRINT = "fingerprint"
SIGNAL_SIMILARITY = "similarity"

DOMAIN_MAX_DISTANCE = 2
LOCAL_MAX_DISTANCE_CAP = 3
MIN_OVERLAP = 4


class RecordRow(NamedTuple):
    attendee_email: str
    attendee_name: str
    client_id: str | None
    client_id_raw: str | None


@dataclass(frozen=True)
class EmailParts:
    email: str
    local: str
    domain: str
    domain_base: str
    tld: str


@dataclass
class EmailSuggestion:
    email_a: str
    email_b: str
    distance: int
    signals: set[str] = field(default_factory=set)
    count_a: int = 0
    count_b: int = 0

    @property
    def id(self) -> str:
        return suggestion_key(self.email_a, self.email_b)

    @property
    def has_fingerprint(self) -> bool:
        return SIGNAL_FINGERPRINT in self.signals

    @property
    def total_count(self) -> int:
        return self.count_a + self.count_b

    @property
    def default_canonical(self) -> str:
        return self.email_a if self.count_a >= self.count_b else self.email_b


@dataclass(frozen=True)
class NameConflict:
    email: str
    names: list[tuple[str, int]]


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_local_part(local: str) -> str:
    return "".join(local.replace(".", "").split()).lower()


def normalize_domain(domain: str) -> str:
    return "".join(domain.split()).lower()


def split_domain(domain: str) -> tuple[str, str]:
    parts = [part for part in domain.split(".") if part]
    if len(parts) <= 1:
        return domain, ""
    return ".".join(parts[:-1]), parts[-1]


def suggestion_key(email_a: str, email_b: str) -> str:
    return "::".join(sorted((email_a, email_b)))


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a or not b:
        return max(len(a), len(b))

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def longest_common_substring(a: str, b: str) -> int:
    if not a or not b:
        return 0
    longest = 0
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0] * (len(b) + 1)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1] + 1
                longest = max(longest, current[j])
        previous = current
    return longest


def parse_email(email: str) -> EmailParts | None:
    local_part, sep, domain_part = email.partition("@")
    if not sep:
        return None
    local = normalize_local_part(local_part)
    domain = normalize_domain(domain_part)
    if not local or not domain:
        return None
    domain_base, tld = split_domain(domain)
    return EmailParts(email, local, domain, domain_base, tld)


def local_distance_limit(a: str, b: str) -> int:
    return min(LOCAL_MAX_DISTANCE_CAP, max(1, max(len(a), len(b)) // 4))


def has_local_overlap(a: str, b: str) -> bool:
    shortest = min(len(a), len(b))
    if shortest >= MIN_OVERLAP and longest_common_substring(a, b) >= min(5, shortest):
        return True
    return (b in a and len(b) >= MIN_OVERLAP) or (a in b and len(a) >= MIN_OVERLAP)


def compare_emails(a: EmailParts, b: EmailParts) -> int | None:
    """Similarity distance between two addresses, or None if they look unrelated."""
    if a.email == b.email:
        return None

    domain_distance = levenshtein(a.domain, b.domain)
    local_distance = levenshtein(a.local, b.local)

    overlap = has_local_overlap(a.local, b.local)
    tld_variant = (
        a.local == b.local
        and bool(a.domain_base)
        and a.domain_base == b.domain_base
        and bool(a.tld)
        and bool(b.tld)
        and a.tld != b.tld
    )
    local_typo = local_distance <= local_distance_limit(a.local, b.local)
    domain_typo = domain_distance <= DOMAIN_MAX_DISTANCE

    if not (local_typo or overlap or tld_variant):
        return None
    if not (domain_typo or overlap or tld_variant):
        return None

    if tld_variant:
        return local_distance
    return local_distance + min(domain_distance, 3)


def device_client_id(client_id: str | None, client_id_raw: str | None) -> str | None:
    if client_id_raw:
        return client_id_raw
    if not client_id or client_id.startswith(SYNTHETIC_CLIENT_ID_PREFIXES):
        return None
    return client_id


class IdentityCorpus:
    """Per-email and per-device aggregates of a series' attendance records."""

    def __init__(self) -> None:
        self.email_counts: Counter[str] = Counter()
        self.names_by_email: dict[str, Counter[str]] = defaultdict(Counter)
        self.emails_by_device: dict[str, set[str]] = defaultdict(set)

    def add(self, rows: Iterable[RecordRow]) -> None:
        for row in rows:
            email = normalize_email(row.attendee_email)
            if not email:
                continue
            self.email_counts[email] += 1

            name = (row.attendee_name or "").strip()
            if name:
                self.names_by_email[email][name] += 1

            device = device_client_id(row.client_id, row.client_id_raw)
            if device:
                self.emails_by_device[device].add(email)

    def suggest(
        self, limit: int = 24, dismissed: Iterable[str] = ()
    ) -> list[EmailSuggestion]:
        found: dict[str, EmailSuggestion] = {}

        def merge(email_a: str, email_b: str, distance: int, signal: str) -> None:
            first, second = sorted((email_a, email_b))
            key = suggestion_key(first, second)
            existing = found.get(key)
            if existing is None:
                found[key] = EmailSuggestion(
                    email_a=first,
                    email_b=second,
                    distance=distance,
                    signals={signal},
                    count_a=self.email_counts[first],
                    count_b=self.email_counts[second],
                )
                return
            existing.signals.add(signal)
            existing.distance = min(existing.distance, distance)

        for emails in self.emails_by_device.values():
            if len(emails) < 2:
                continue
            for email_a, email_b in combinations(sorted(emails), 2):
                merge(email_a, email_b, 0, SIGNAL_FINGERPRINT)

        parsed = [p for p in (parse_email(email) for email in sorted(self.email_counts)) if p]
        for a, b in combinations(parsed, 2):
            distance = compare_emails(a, b)
            if distance is not None:
                merge(a.email, b.email, distance, SIGNAL_SIMILARITY)

        skipped = set(dismissed)
        ranked = sorted(
            (s for s in found.values() if s.id not in skipped),
            key=lambda s: (not s.has_fingerprint, s.distance, -s.total_count, s.id),
        )
        return ranked[:limit]

    def name_conflicts(self) -> list[NameConflict]:
        conflicts = []
        for email in sorted(self.names_by_email):
            counts = self.names_by_email[email]
            if len(counts) < 2:
                continue
            names = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            conflicts.append(NameConflict(email=email, names=names))
        return conflicts

    def preferred_name(self, email: str) -> str | None:
        counts = self.names_by_email.get(normalize_email(email))
        if not counts:
            return None
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0]


def suggest_pair(email_a: str, email_b: str) -> EmailSuggestion | None:
    """Similarity verdict for a single pair, independent of argument order."""
    corpus = IdentityCorpus()
    corpus.add(
        [
            RecordRow(email_a, "", None, None),
            RecordRow(email_b, "", None, None),
        ]
    )
    suggestions = corpus.suggest(limit=1)
    return suggestions[0] if suggestions else None
