"""Name reconciliation between the classroom roster and attendance sheets.

Attendance rows only carry a free-text name, so every row is resolved against
the classroom roster with an ordered list of matcher strategies. The first
strategy that produces a candidate passing the strong-similarity gate wins.
Rows that resolve to the same student (or that normalize to the same name)
are merged into one group; rows that resolve to nobody become sheet-only
groups with a synthetic id.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from app.models import AttendanceRecord, ClassroomStudent, SessionEntry


TOKEN_SPLIT = re.compile(r'[\s.]+')
NON_ALNUM = re.compile(r'[^a-z0-9]+')

# Token containment is only trusted for reasonably long tokens of similar size,
# otherwise "anisha" / "anushree" style collisions slip through.
MIN_FUZZY_TOKEN_LENGTH = 4
TOKEN_LENGTH_SPREAD = 1.5
TOKEN_CONTAINMENT_RATIO = 0.7
STRONG_OVERLAP_RATIO = 0.8

SYNTHETIC_ID_PREFIX = 'sheet_'


def tokenize(name: Optional[str]) -> List[str]:
    """Lower-case a name and split it on whitespace and periods."""
    if name is None:
        return []
    return [token for token in TOKEN_SPLIT.split(str(name).strip().lower()) if token]


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a name for comparison.

    Examples:
        "  Kumar   Anish " -> "kumar anish"
        "D.K.Pavithran"    -> "d k pavithran"
    """
    return ' '.join(tokenize(name))


def slugify(name: Optional[str]) -> str:
    return NON_ALNUM.sub('_', normalize_name(name)).strip('_')


@dataclass(frozen=True)
class NameKey:
    """Pre-computed comparison forms of one name."""
    raw: str
    tokens: Tuple[str, ...]

    @property
    def normalized(self) -> str:
        return ' '.join(self.tokens)

    @property
    def compact(self) -> str:
        return NON_ALNUM.sub('', self.normalized)

    @property
    def first(self) -> str:
        return self.tokens[0] if self.tokens else ''

    @property
    def last(self) -> str:
        return self.tokens[-1] if self.tokens else ''

    @property
    def initials(self) -> str:
        return ''.join(token[0] for token in self.tokens)


def build_name_key(name: Optional[str]) -> NameKey:
    return NameKey(raw=name or '', tokens=tuple(tokenize(name)))


def tokens_overlap(a: str, b: str) -> bool:
    """
    Check whether two name tokens refer to the same name part.

    Both tokens must be at least MIN_FUZZY_TOKEN_LENGTH long, even when equal,
    so short first names like "sai" never fire on their own. Unequal tokens
    also need the shorter one inside the longer one, covering 70% of it.
    """
    shorter, longer = sorted((a, b), key=len)
    if len(shorter) < MIN_FUZZY_TOKEN_LENGTH:
        return False
    if a == b:
        return True
    if len(longer) > len(shorter) * TOKEN_LENGTH_SPREAD:
        return False
    return shorter in longer and len(shorter) >= len(longer) * TOKEN_CONTAINMENT_RATIO


def overlap_ratio(a: NameKey, b: NameKey) -> float:
    """
    Share of the longer name's letters covered by tokens the two names share.

    Each token of ``b`` can be paired at most once.
    """
    remaining = list(b.tokens)
    shared = 0
    for token in a.tokens:
        for other in remaining:
            if token == other or tokens_overlap(token, other):
                shared += min(len(token), len(other))
                remaining.remove(other)
                break
    longest = max(len(a.compact), len(b.compact))
    if longest == 0:
        return 0.0
    return shared / longest


def is_strong_match(a: NameKey, b: NameKey) -> bool:
    """
    Second gate applied to every candidate the strategies propose.

    Accepts when the names share at least 80% of their letters as whole or
    near-whole tokens, when the first names are identical, or when the names
    are identical once punctuation and spacing are removed.
    """
    if not a.tokens or not b.tokens:
        return False
    if overlap_ratio(a, b) >= STRONG_OVERLAP_RATIO:
        return True
    if len(a.first) > 1 and a.first == b.first:
        return True
    return a.compact == b.compact


def _exact(query: NameKey, candidate: NameKey) -> bool:
    return query.normalized == candidate.normalized


def _reversed(query: NameKey, candidate: NameKey) -> bool:
    return len(query.tokens) >= 2 and query.tokens[::-1] == candidate.tokens


def _first_last(query: NameKey, candidate: NameKey) -> bool:
    if len(query.tokens) < 2 or len(candidate.tokens) < 2:
        return False
    pair = (query.first, query.last)
    return pair == (candidate.first, candidate.last) or pair == (candidate.last, candidate.first)


def _token_overlap(query: NameKey, candidate: NameKey) -> bool:
    return any(
        tokens_overlap(token, other)
        for token in query.tokens
        for other in candidate.tokens
    )


def _substring(query: NameKey, candidate: NameKey) -> bool:
    shorter, longer = sorted((query.normalized, candidate.normalized), key=len)
    return len(shorter) >= MIN_FUZZY_TOKEN_LENGTH and shorter in longer


def _initials(query: NameKey, candidate: NameKey) -> bool:
    return query.initials == candidate.initials


class MatchStrategy(NamedTuple):
    name: str
    test: Callable[[NameKey, NameKey], bool]


MATCH_STRATEGIES: List[MatchStrategy] = [
    MatchStrategy('exact', _exact),
    MatchStrategy('reversed', _reversed),
    MatchStrategy('first_last', _first_last),
    MatchStrategy('token_overlap', _token_overlap),
    MatchStrategy('substring', _substring),
    MatchStrategy('initials', _initials),
]


class RosterMatch(NamedTuple):
    student: ClassroomStudent
    strategy: str


class RosterIndex:
    """Classroom roster prepared for name lookups."""

    def __init__(
        self,
        students: List[ClassroomStudent],
        strategies: Optional[List[MatchStrategy]] = None
    ):
        self.strategies = strategies if strategies is not None else MATCH_STRATEGIES
        # Sorted by id so the winner never depends on roster order
        self._entries: List[Tuple[NameKey, ClassroomStudent]] = sorted(
            (
                (build_name_key(student.full_name), student)
                for student in students
                if tokenize(student.full_name)
            ),
            key=lambda entry: entry[1].user_id
        )
        self._by_id: Dict[str, ClassroomStudent] = {s.user_id: s for s in students}
        self._by_email: Dict[str, ClassroomStudent] = {
            s.email.strip().lower(): s for s in students if s.email
        }
        self._memo: Dict[str, Optional[RosterMatch]] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    @property
    def students(self) -> List[ClassroomStudent]:
        return list(self._by_id.values())

    def match(self, name: Optional[str]) -> Optional[RosterMatch]:
        """Resolve a free-text name to a classroom student, or None."""
        key = build_name_key(name)
        if not key.tokens:
            return None
        if key.normalized in self._memo:
            return self._memo[key.normalized]

        result = None
        for strategy in self.strategies:
            for candidate_key, student in self._entries:
                if strategy.test(key, candidate_key) and is_strong_match(key, candidate_key):
                    result = RosterMatch(student, strategy.name)
                    break
            if result is not None:
                break

        self._memo[key.normalized] = result
        return result

    def lookup(self, identifier: str) -> Optional[ClassroomStudent]:
        """Find a student by email (case-insensitive) first, then by user id."""
        if not identifier:
            return None
        student = self._by_email.get(identifier.strip().lower())
        if student is None:
            student = self._by_id.get(identifier.strip())
        return student


@dataclass
class AttendanceGroup:
    """All attendance rows that belong to one physical student."""
    student_id: str
    name: str
    classroom_student: Optional[ClassroomStudent] = None
    match_strategy: Optional[str] = None
    records: List[AttendanceRecord] = field(default_factory=list)

    @property
    def classroom_status(self) -> str:
        return 'joined' if self.classroom_student is not None else 'not_joined'

    @property
    def resolution(self) -> str:
        if self.classroom_student is None:
            return 'sheet_only'
        return 'matched' if self.records else 'classroom_only'

    @property
    def source_names(self) -> List[str]:
        names: List[str] = []
        for record in self.records:
            if record.name not in names:
                names.append(record.name)
        return names

    def merged_record(self) -> Optional[AttendanceRecord]:
        if not self.records:
            return None
        return merge_records(self.records)


def merge_records(records: List[AttendanceRecord]) -> AttendanceRecord:
    """
    Combine duplicate attendance rows of one student.

    Sessions are unioned by session name; when both rows carry the same
    session the entry with a status and more points is kept. The attendance
    percentage is the maximum reported by any row.
    """
    sessions: Dict[str, SessionEntry] = {}
    for record in records:
        for entry in record.sessions:
            if not entry.session_name:
                continue
            current = sessions.get(entry.session_name)
            if current is None or _prefer_entry(entry, current):
                sessions[entry.session_name] = entry

    s_numbers = [r.s_no for r in records if r.s_no is not None]
    return AttendanceRecord(
        name=records[0].name,
        s_no=min(s_numbers) if s_numbers else None,
        attendance_percentage=max(r.attendance_percentage for r in records),
        sessions=list(sessions.values()),
    )


def _prefer_entry(candidate: SessionEntry, current: SessionEntry) -> bool:
    if current.status is None and candidate.status is not None:
        return True
    if candidate.status is None:
        return False
    return candidate.points > current.points


def _record_sort_key(record: AttendanceRecord):
    return (
        record.s_no is None,
        record.s_no if record.s_no is not None else 0,
        normalize_name(record.name),
        record.name,
    )


def synthetic_id(record: AttendanceRecord) -> str:
    if record.s_no is not None:
        return f"{SYNTHETIC_ID_PREFIX}{record.s_no}"
    return f"{SYNTHETIC_ID_PREFIX}{slugify(record.name) or 'unknown'}"


def reconcile_rosters(
    classroom_students: List[ClassroomStudent],
    attendance_records: List[AttendanceRecord],
    include_unmatched_classroom: bool = True,
    index: Optional[RosterIndex] = None
) -> List[AttendanceGroup]:
    """
    Group attendance rows by the physical student they describe.

    Args:
        classroom_students: Classroom roster (source of truth for identity)
        attendance_records: Attendance sheet rows
        include_unmatched_classroom: Also emit classroom students that have no
            attendance rows at all
        index: Pre-built roster index (built from classroom_students if None)

    Returns:
        One AttendanceGroup per physical student
    """
    if index is None:
        index = RosterIndex(classroom_students)

    by_student: Dict[str, AttendanceGroup] = {}
    by_name: Dict[str, AttendanceGroup] = {}
    skipped = 0

    for record in sorted(attendance_records, key=_record_sort_key):
        normalized = normalize_name(record.name)
        if not normalized:
            skipped += 1
            continue

        match = index.match(record.name)
        if match is not None:
            group = by_student.get(match.student.user_id)
            if group is None:
                group = AttendanceGroup(
                    student_id=match.student.user_id,
                    name=match.student.full_name,
                    classroom_student=match.student,
                    match_strategy=match.strategy,
                )
                by_student[match.student.user_id] = group
            group.records.append(record)
            continue

        group = by_name.get(normalized)
        if group is None:
            group = AttendanceGroup(student_id='', name=record.name)
            by_name[normalized] = group
        group.records.append(record)

    used_ids = set(by_student)
    for group in by_name.values():
        base_id = synthetic_id(group.merged_record())
        candidate_id = base_id
        suffix = 2
        while candidate_id in used_ids:
            candidate_id = f"{base_id}_{suffix}"
            suffix += 1
        group.student_id = candidate_id
        used_ids.add(candidate_id)

    groups = list(by_student.values()) + list(by_name.values())

    if include_unmatched_classroom:
        for student in index.students:
            if student.user_id not in by_student:
                groups.append(AttendanceGroup(
                    student_id=student.user_id,
                    name=student.full_name,
                    classroom_student=student,
                ))

    merged_rows = sum(len(g.records) for g in groups) - sum(1 for g in groups if g.records)
    if skipped:
        print(f"WARNING: Skipped {skipped} attendance rows without a name")
    print(
        f"DEBUG: Reconciled {len(attendance_records)} attendance rows against "
        f"{len(index)} classroom students: {len(by_student)} matched, "
        f"{len(by_name)} sheet-only, {merged_rows} duplicate rows merged"
    )

    groups.sort(key=lambda g: (g.name.lower(), g.student_id))
    return groups
