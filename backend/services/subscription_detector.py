"""Recurring-payment (subscription) detection over spending transactions.

Transactions are grouped by merchant, the day gaps between consecutive
charges are matched against frequency bands, and groups whose gaps mostly
agree on one band are reported as subscriptions.
"""

import hashlib
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class FrequencyRule:
    frequency: Frequency
    min_days: int
    max_days: int
    min_share: float | None  # share of intervals that must match; None = one match suffices
    max_confidence: float
    fixed_confidence: float | None = None
    step: relativedelta = field(default_factory=relativedelta)
    monthly_factor: Decimal = Decimal("1")


# Checked in this order; the first qualifying rule wins.
FREQUENCY_RULES: tuple[FrequencyRule, ...] = (
    FrequencyRule(Frequency.MONTHLY, 28, 32, 0.7, 0.9,
                  step=relativedelta(months=1), monthly_factor=Decimal("1")),
    FrequencyRule(Frequency.WEEKLY, 6, 8, 0.7, 0.9,
                  step=relativedelta(weeks=1), monthly_factor=Decimal("4.33")),
    FrequencyRule(Frequency.QUARTERLY, 88, 95, 0.5, 0.8,
                  step=relativedelta(months=3), monthly_factor=Decimal("1") / Decimal("3")),
    FrequencyRule(Frequency.YEARLY, 360, 370, None, 0.7, fixed_confidence=0.7,
                  step=relativedelta(years=1), monthly_factor=Decimal("1") / Decimal("12")),
)

RULES_BY_FREQUENCY = {rule.frequency: rule for rule in FREQUENCY_RULES}

MIN_CONFIDENCE = 0.6  # groups at or below this are dropped
MIN_GROUP_SIZE = 2

# Spending that recurs but is not a subscription
EXCLUSION_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bwire\b",
        r"deposit",
        r"\batm\b",
        r"\bcheck #?\d+",
        r"\b(venmo|zelle|paypal|cash app)\b",
        r"\btransfer (to|from)\b",
        r"\b(cash advance|balance transfer)\b",
        r"\b(gas station|exxon|shell|chevron|mobil|texaco|sunoco|valero|citgo|marathon|phillips 66)\b",
        r"\b(grocery|walmart|target|kroger|safeway|whole foods|costco|publix|albertsons|trader joe)",
        r"\b(restaurant|mcdonald|burger|pizza|starbucks|coffee|chipotle|subway|wendy|taco bell)",
        r"\b(uber|lyft|taxi|doordash|grubhub|postmates|instacart)\b",
        r"\b(parking|toll)\b",
        r"\b(amzn mktp|amazon marketplace|amazon\.com purchase)",
    )
)

_PREFIX_RE = re.compile(
    r"^(debit card purchase|pos purchase|pos|purchase|checkcard|ach debit|"
    r"payment to|autopay|recurring|monthly|subscription)\b\s*[-:]?\s*",
    re.IGNORECASE,
)
_SUFFIX_RE = re.compile(r"\s*(payment|autopay|recurring|pmt)$", re.IGNORECASE)
_TRAILING_DIGITS_RE = re.compile(r"[\s#*-]*\d+$")
_SPECIAL_RE = re.compile(r"[*#]")
_SPACES_RE = re.compile(r"\s+")

CATEGORY_TERMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Streaming", ("netflix", "spotify", "hulu", "disney", "amazon prime", "apple music", "youtube", "hbo", "max", "paramount", "peacock")),
    ("Utilities", ("electric", "gas", "water", "internet", "phone", "cable", "verizon", "at&t", "att", "comcast", "xfinity", "spectrum", "t-mobile")),
    ("Software", ("adobe", "microsoft", "google", "dropbox", "github", "slack", "zoom", "icloud", "openai")),
    ("Fitness", ("gym", "fitness", "peloton", "yoga", "strava")),
    ("Financial", ("bank", "credit", "loan", "insurance", "investment", "geico", "progressive")),
)


@dataclass
class SpendTransaction:
    """An outgoing payment. ``amount`` is positive spend."""

    id: str
    date: date
    amount: Decimal
    description: str
    merchant_name: str | None = None
    account_name: str | None = None


@dataclass
class Subscription:
    id: str
    merchant_key: str
    merchant_name: str
    amount: Decimal  # average charge
    frequency: Frequency
    next_billing_date: date
    last_transaction_date: date
    confidence: float
    category: str
    account_name: str | None = None
    transactions: list[SpendTransaction] = field(default_factory=list)

    @property
    def monthly_amount(self) -> Decimal:
        return monthly_equivalent(self.amount, self.frequency)


def monthly_equivalent(amount: Decimal, frequency: Frequency) -> Decimal:
    """Normalize a charge to a per-month amount (weekly x4.33, quarterly /3, yearly /12)."""
    return amount * RULES_BY_FREQUENCY[frequency].monthly_factor


def is_excluded(txn: SpendTransaction) -> bool:
    text = f"{txn.description or ''} {txn.merchant_name or ''}"
    return any(pattern.search(text) for pattern in EXCLUSION_PATTERNS)


def clean_description(description: str) -> str:
    """Lower-case a raw description and strip processor prefixes, suffixes and trailing ids."""
    key = (description or "").lower().strip()
    key = _PREFIX_RE.sub("", key)
    key = _SPECIAL_RE.sub(" ", key)
    key = _SPACES_RE.sub(" ", key).strip()
    previous = None
    while previous != key:
        previous = key
        key = _TRAILING_DIGITS_RE.sub("", key).strip()
        key = _SUFFIX_RE.sub("", key).strip()
    return key


def merchant_key(txn: SpendTransaction) -> str:
    """Grouping key: the provider merchant name if present, else the cleaned description."""
    if txn.merchant_name and txn.merchant_name.strip():
        return _SPACES_RE.sub(" ", txn.merchant_name.lower().strip())
    return clean_description(txn.description)


def display_name(key: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in key.split(" "))


def categorize(key: str) -> str:
    words = set(re.split(r"[^a-z0-9&+-]+", key.lower()))
    for category, terms in CATEGORY_TERMS:
        for term in terms:
            if (" " in term and term in key) or term in words:
                return category
    return "Other"


def classify_intervals(intervals: list[int]) -> tuple[Frequency, float] | None:
    """Match day gaps against the frequency bands.

    Returns ``(frequency, confidence)`` for the first qualifying band, or
    None. Confidence is the matching share capped per frequency (yearly is
    fixed).
    """
    if not intervals:
        return None
    total = len(intervals)
    for rule in FREQUENCY_RULES:
        matching = sum(1 for days in intervals if rule.min_days <= days <= rule.max_days)
        if matching == 0:
            continue
        share = matching / total
        if rule.min_share is not None and share < rule.min_share:
            continue
        if rule.fixed_confidence is not None:
            return rule.frequency, rule.fixed_confidence
        return rule.frequency, min(rule.max_confidence, share)
    return None


def next_billing_date(last: date, frequency: Frequency, today: date) -> date:
    """First date strictly after ``today`` reached by whole calendar steps from ``last``.

    Steps are taken as multiples from ``last`` (last + n months, not repeated
    +1 month), so a charge on the 31st stays on the last day of short months
    without drifting.
    """
    step = RULES_BY_FREQUENCY[frequency].step
    n = 1
    projected = last + step
    while projected <= today:
        n += 1
        projected = last + step * n
    return projected


def _subscription_id(key: str) -> str:
    return "sub_" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]


def detect_subscriptions(
    transactions: Iterable[SpendTransaction], today: date | None = None
) -> list[Subscription]:
    """Infer subscriptions from outgoing transactions.

    Output is sorted by monthly-equivalent spend, highest first.
    """
    today = today or date.today()
    groups: dict[str, list[SpendTransaction]] = defaultdict(list)
    for txn in transactions:
        if txn.amount <= 0 or is_excluded(txn):
            continue
        key = merchant_key(txn)
        if not key:
            continue
        groups[key].append(txn)

    subscriptions = []
    for key, group in groups.items():
        if len(group) < MIN_GROUP_SIZE:
            continue
        group.sort(key=lambda t: (t.date, t.id))
        intervals = [(b.date - a.date).days for a, b in zip(group, group[1:])]
        classified = classify_intervals(intervals)
        if classified is None:
            continue
        frequency, confidence = classified
        if confidence <= MIN_CONFIDENCE:
            continue

        average = (sum((t.amount for t in group), Decimal("0")) / len(group)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        latest = group[-1]
        subscriptions.append(
            Subscription(
                id=_subscription_id(key),
                merchant_key=key,
                merchant_name=display_name(key),
                amount=average,
                frequency=frequency,
                next_billing_date=next_billing_date(latest.date, frequency, today),
                last_transaction_date=latest.date,
                confidence=round(confidence, 2),
                category=categorize(key),
                account_name=latest.account_name,
                transactions=group[-6:],
            )
        )

    subscriptions.sort(key=lambda s: s.monthly_amount, reverse=True)
    logger.debug("Detected %d subscriptions from %d merchant groups", len(subscriptions), len(groups))
    return subscriptions


def total_monthly_spend(subscriptions: Iterable[Subscription]) -> Decimal:
    total = sum((s.monthly_amount for s in subscriptions), Decimal("0"))
    return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
